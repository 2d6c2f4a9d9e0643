from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base
from .enums import ArticleStatus, CommentStatus, UserStatus
from .utils.clock import utcnow


# ============================================================================
# ACCESS CONTROL
# ============================================================================


user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True
    ),
)


class Role(Base):
    """A named bundle of permissions."""

    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    slug = Column(String(50), unique=True, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    permissions = relationship(
        "Permission", secondary=role_permissions, back_populates="roles", order_by="Permission.name"
    )
    users = relationship("User", secondary=user_roles, back_populates="roles")


class Permission(Base):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    slug = Column(String(100), unique=True, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    roles = relationship("Role", secondary=role_permissions, back_populates="permissions")


# ============================================================================
# USERS & AUTHENTICATION
# ============================================================================


class User(Base):
    """User account with credentials, profile and moderation state."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile
    avatar_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    twitter = Column(String(255), nullable=True)
    facebook = Column(String(255), nullable=True)
    linkedin = Column(String(255), nullable=True)
    github = Column(String(255), nullable=True)
    website = Column(String(500), nullable=True)

    # Moderation
    banned_at = Column(DateTime, nullable=True, index=True)
    blocked_at = Column(DateTime, nullable=True, index=True)

    # Bumped to revoke every token issued so far
    token_version = Column(Integer, nullable=False, default=0)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    roles = relationship("Role", secondary=user_roles, back_populates="users", order_by="Role.id")
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def status(self) -> str:
        if self.banned_at is not None:
            return UserStatus.BANNED.value
        if self.blocked_at is not None:
            return UserStatus.BLOCKED.value
        return UserStatus.ACTIVE.value

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]


class RefreshToken(Base):
    """Persisted refresh token (hashed) so it can be revoked individually."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )

    user = relationship("User", back_populates="refresh_tokens")


class PasswordResetToken(Base):
    """Password reset token, one live token per email."""

    __tablename__ = "password_reset_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())


class Follow(Base):
    """User following relationship."""

    __tablename__ = "follows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    follower_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    following_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )

    follower = relationship("User", foreign_keys=[follower_id])
    following = relationship("User", foreign_keys=[following_id])

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follow_follower_following"),
        Index("ix_follows_following_created", following_id, created_at.desc()),
    )


# ============================================================================
# TAXONOMY
# ============================================================================


article_categories = Table(
    "article_categories",
    Base.metadata,
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "category_id", Integer, ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True
    ),
)

article_tags = Table(
    "article_tags",
    Base.metadata,
    Column("article_id", Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    parent_id = Column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    parent = relationship("Category", remote_side=[id])


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    slug = Column(String(255), unique=True, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )


# ============================================================================
# ARTICLES
# ============================================================================


class Article(Base):
    """Blog article moving through the moderation lifecycle."""

    __tablename__ = "articles"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False, index=True)
    subtitle = Column(String(255), nullable=True)
    excerpt = Column(String(500), nullable=True)
    content_markdown = Column(Text, nullable=False)
    content_html = Column(Text, nullable=True)
    featured_media_id = Column(
        Integer, ForeignKey("media.id", ondelete="SET NULL"), nullable=True
    )
    meta_title = Column(String(255), nullable=True)
    meta_description = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False, default=ArticleStatus.DRAFT.value, index=True)
    published_at = Column(DateTime, nullable=True, index=True)

    # Editorial flags
    is_featured = Column(Boolean, nullable=False, default=False, index=True)
    featured_at = Column(DateTime, nullable=True)
    is_pinned = Column(Boolean, nullable=False, default=False, index=True)
    pinned_at = Column(DateTime, nullable=True)

    # Reports
    report_count = Column(Integer, nullable=False, default=0)
    last_reported_at = Column(DateTime, nullable=True)
    report_reason = Column(Text, nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    creator = relationship("User", foreign_keys=[created_by])
    approver = relationship("User", foreign_keys=[approved_by])
    featured_media = relationship("Media")
    categories = relationship("Category", secondary=article_categories, order_by="Category.name")
    tags = relationship("Tag", secondary=article_tags, order_by="Tag.name")
    author_links = relationship(
        "ArticleAuthor", back_populates="article", cascade="all, delete-orphan", passive_deletes=True
    )
    comments = relationship(
        "Comment",
        back_populates="article",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    reactions = relationship(
        "ArticleReaction", back_populates="article", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("ix_articles_status_published", status, published_at),
        Index("ix_articles_created_by_status", created_by, status),
    )


class ArticleAuthor(Base):
    """Author credit on an article (main, co_author, contributor)."""

    __tablename__ = "article_authors"

    article_id = Column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), primary_key=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(20), nullable=False, default="main")

    article = relationship("Article", back_populates="author_links")
    user = relationship("User")


class ArticleReaction(Base):
    """Like or dislike on an article by a user or an anonymous IP."""

    __tablename__ = "article_likes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    article_id = Column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    ip_address = Column(String(45), nullable=True)
    type = Column(String(10), nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())

    article = relationship("Article", back_populates="reactions")

    __table_args__ = (
        UniqueConstraint("article_id", "user_id", name="uq_article_likes_article_user"),
        UniqueConstraint("article_id", "ip_address", name="uq_article_likes_article_ip"),
        CheckConstraint(
            "(user_id IS NULL) <> (ip_address IS NULL)", name="ck_article_likes_single_actor"
        ),
    )


# ============================================================================
# COMMENTS
# ============================================================================


class Comment(Base):
    """Comment on an article; one level of replies via parent_comment_id."""

    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    article_id = Column(
        Integer, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    parent_comment_id = Column(
        Integer, ForeignKey("comments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    content = Column(Text, nullable=False)

    status = Column(String(20), nullable=False, default=CommentStatus.PENDING.value, index=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Reports
    report_count = Column(Integer, nullable=False, default=0)
    last_reported_at = Column(DateTime, nullable=True)
    report_reason = Column(Text, nullable=True)

    moderator_notes = Column(Text, nullable=True)
    admin_note = Column(Text, nullable=True)

    # Soft delete
    deleted_reason = Column(Text, nullable=True)
    deleted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    deleted_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    article = relationship("Article", back_populates="comments")
    user = relationship("User", foreign_keys=[user_id])
    parent = relationship("Comment", remote_side=[id])

    __table_args__ = (
        Index("ix_comments_article_parent_status", article_id, parent_comment_id, status),
    )


# ============================================================================
# MEDIA
# ============================================================================


class Media(Base):
    """Uploaded file in the media library."""

    __tablename__ = "media"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    file_name = Column(String(255), nullable=False, index=True)
    mime_type = Column(String(255), nullable=False)
    disk = Column(String(50), nullable=False, default="local")
    path = Column(String(500), nullable=False)
    url = Column(String(1000), nullable=True)
    size = Column(BigInteger, nullable=False)
    type = Column(String(20), nullable=False, default="image", index=True)
    alt_text = Column(Text, nullable=True)
    caption = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    uploaded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    uploader = relationship("User")

    __table_args__ = (
        Index("ix_media_uploaded_by_created", uploaded_by, created_at),
    )


# ============================================================================
# NEWSLETTER
# ============================================================================


class NewsletterSubscriber(Base):
    """Newsletter subscription with double opt-in."""

    __tablename__ = "newsletter_subscribers"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False, index=True)
    verification_token = Column(String(64), nullable=True)  # sha256 hex of the mailed token
    verification_token_expires_at = Column(DateTime, nullable=True)
    subscribed_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    unsubscribed_at = Column(DateTime, nullable=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class Notification(Base):
    """Broadcast notification; distributed to users as UserNotification rows."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    message = Column(JSON, nullable=False)  # {"title": ..., "body": ...}
    # Set by event listeners so a retried event reuses its notification
    source_key = Column(String(100), nullable=True, unique=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )
    updated_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    audiences = relationship(
        "NotificationAudience",
        back_populates="notification",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class NotificationAudience(Base):
    __tablename__ = "notification_audiences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(
        Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    audience_type = Column(String(20), nullable=False)  # all | role | user
    audience_value = Column(String(100), nullable=True)  # role name or user id

    notification = relationship("Notification", back_populates="audiences")


class UserNotification(Base):
    """Per-user inbox entry for a notification."""

    __tablename__ = "user_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    notification_id = Column(
        Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )

    notification = relationship("Notification")

    __table_args__ = (
        UniqueConstraint("notification_id", "user_id", name="uq_user_notifications_notification_user"),
    )


# ============================================================================
# AUDIT
# ============================================================================


class AuditLog(Base):
    """Audit log for moderation actions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    action = Column(String(100), nullable=False, index=True)
    target_type = Column(String(20), nullable=True)
    target_id = Column(String(50), nullable=True, index=True)

    reason_code = Column(String(50), nullable=True)
    note = Column(Text, nullable=True)

    created_at = Column(
        DateTime, nullable=False, default=utcnow, server_default=func.now(), index=True
    )

    __table_args__ = (
        Index("ix_audit_logs_actor_created", actor_id, created_at.desc()),
    )
