from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from .enums import ArticleAuthorRole, NotificationAudience, NotificationType


# ============================================================================
# BASE SCHEMAS
# ============================================================================


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope shared by every endpoint."""

    status: bool = True
    message: str | None = "Success."
    data: T | None = None
    error: Any | None = None


class PageMeta(BaseModel):
    current_page: int
    per_page: int
    total: int
    last_page: int
    from_: int | None = Field(default=None, alias="from")
    to: int | None = None

    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok"] = "ok"
    uptime_s: float | None = None


# ============================================================================
# ROLES & USERS
# ============================================================================


class PermissionOut(BaseModel):
    id: int
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class RoleBrief(BaseModel):
    id: int
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class RoleOut(RoleBrief):
    permissions: list[PermissionOut] = []


class RoleList(BaseModel):
    roles: list[RoleOut]


class PermissionList(BaseModel):
    permissions: list[PermissionOut]


class RolePermissionsUpdateRequest(BaseModel):
    permissions: list[str] = Field(..., description="Permission names granted to the role")


class UserBrief(BaseModel):
    id: int
    name: str
    avatar_url: str | None = None

    model_config = ConfigDict(from_attributes=True)


class UserOut(BaseModel):
    """User as seen by the user themselves or by administrators."""

    id: int
    name: str
    email: str
    avatar_url: str | None = None
    bio: str | None = None
    twitter: str | None = None
    facebook: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None
    status: str
    banned_at: datetime | None = None
    blocked_at: datetime | None = None
    roles: list[RoleBrief] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MeOut(UserOut):
    permissions: list[str] = []


class UserProfile(BaseModel):
    """Public profile."""

    id: int
    name: str
    avatar_url: str | None = None
    bio: str | None = None
    twitter: str | None = None
    facebook: str | None = None
    linkedin: str | None = None
    github: str | None = None
    website: str | None = None
    followers_count: int = 0
    following_count: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserList(BaseModel):
    users: list[UserOut]
    meta: PageMeta


class UserBriefList(BaseModel):
    users: list[UserBrief]
    meta: PageMeta


class ProfileFields(BaseModel):
    avatar_url: str | None = Field(None, max_length=500)
    bio: str | None = Field(None, max_length=5000)
    twitter: str | None = Field(None, max_length=255)
    facebook: str | None = Field(None, max_length=255)
    linkedin: str | None = Field(None, max_length=255)
    github: str | None = Field(None, max_length=255)
    website: str | None = Field(None, max_length=500)


class ProfileUpdateRequest(ProfileFields):
    name: str | None = Field(None, min_length=1, max_length=255)


class AdminUserCreateRequest(ProfileFields):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=255)
    role_id: int | None = None


class AdminUserUpdateRequest(ProfileFields):
    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    password: str | None = Field(None, min_length=8, max_length=255)
    role_ids: list[int] | None = None


class UserModerationRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class FollowStatus(BaseModel):
    user_id: int
    following: bool


# ============================================================================
# AUTH
# ============================================================================


class _PasswordConfirmation(BaseModel):
    password: str = Field(..., min_length=8, max_length=255)
    password_confirmation: str

    @model_validator(mode="after")
    def _passwords_match(self):
        if self.password != self.password_confirmation:
            raise ValueError("The password confirmation does not match.")
        return self


class RegisterRequest(_PasswordConfirmation):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(_PasswordConfirmation):
    email: EmailStr
    token: str = Field(..., min_length=1)


class AuthTokens(BaseModel):
    token_type: str = "Bearer"
    access_token: str
    access_token_expires_at: datetime
    refresh_token: str | None = None
    refresh_token_expires_at: datetime | None = None


class AuthResponse(BaseModel):
    user: UserOut
    tokens: AuthTokens


# ============================================================================
# TAXONOMY
# ============================================================================


class CategoryOut(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    parent_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class CategoryList(BaseModel):
    categories: list[CategoryOut]


class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255)
    description: str | None = None
    parent_id: int | None = None


class CategoryUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255)
    description: str | None = None
    parent_id: int | None = None


class TagOut(BaseModel):
    id: int
    name: str
    slug: str

    model_config = ConfigDict(from_attributes=True)


class TagList(BaseModel):
    tags: list[TagOut]


class TagCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255)


class TagUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=255)


# ============================================================================
# MEDIA
# ============================================================================


class MediaOut(BaseModel):
    id: int
    name: str
    file_name: str
    mime_type: str
    disk: str
    path: str
    url: str | None = None
    size: int
    type: str
    alt_text: str | None = None
    caption: str | None = None
    description: str | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="metadata_")
    uploaded_by: int | None = None
    uploader: UserBrief | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MediaBrief(BaseModel):
    id: int
    name: str
    url: str | None = None
    alt_text: str | None = None

    model_config = ConfigDict(from_attributes=True)


class MediaList(BaseModel):
    media: list[MediaOut]
    meta: PageMeta


class MediaUpdateRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    alt_text: str | None = None
    caption: str | None = None
    description: str | None = None


# ============================================================================
# ARTICLES
# ============================================================================


class ArticleAuthorInput(BaseModel):
    user_id: int
    role: ArticleAuthorRole = ArticleAuthorRole.MAIN


class ArticleAuthorOut(BaseModel):
    user_id: int
    role: str
    user: UserBrief | None = None

    model_config = ConfigDict(from_attributes=True)


class _ArticleContent(BaseModel):
    subtitle: str | None = Field(None, max_length=255)
    excerpt: str | None = Field(None, max_length=500)
    content_html: str | None = None
    featured_media_id: int | None = None
    meta_title: str | None = Field(None, max_length=255)
    meta_description: str | None = Field(None, max_length=500)
    category_ids: list[int] | None = None
    tag_ids: list[int] | None = None
    authors: list[ArticleAuthorInput] | None = None


class ArticleCreateRequest(_ArticleContent):
    slug: str | None = Field(None, max_length=255)
    title: str = Field(..., min_length=1, max_length=255)
    content_markdown: str = Field(..., min_length=1)
    published_at: datetime | None = None


class ArticleUpdateRequest(_ArticleContent):
    slug: str | None = Field(None, max_length=255)
    title: str | None = Field(None, min_length=1, max_length=255)
    content_markdown: str | None = Field(None, min_length=1)
    published_at: datetime | None = None
    submit_for_review: bool = False


class ReportRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class ArticleSummary(BaseModel):
    id: int
    slug: str
    title: str
    subtitle: str | None = None
    excerpt: str | None = None
    status: str
    published_at: datetime | None = None
    is_featured: bool
    is_pinned: bool
    report_count: int = 0
    created_by: int | None = None
    creator: UserBrief | None = None
    featured_media: MediaBrief | None = None
    categories: list[CategoryOut] = []
    tags: list[TagOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ArticleDetail(ArticleSummary):
    content_markdown: str
    content_html: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    featured_media_id: int | None = None
    approved_by: int | None = None
    approver: UserBrief | None = None
    featured_at: datetime | None = None
    pinned_at: datetime | None = None
    last_reported_at: datetime | None = None
    report_reason: str | None = None
    authors: list[ArticleAuthorOut] = Field(default=[], validation_alias="author_links")
    likes_count: int = 0
    dislikes_count: int = 0
    comments_count: int = 0

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class ArticleList(BaseModel):
    articles: list[ArticleSummary]
    meta: PageMeta


class ReactionOut(BaseModel):
    id: int
    article_id: int
    user_id: int | None = None
    type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# COMMENTS
# ============================================================================


class CommentOut(BaseModel):
    id: int
    article_id: int
    parent_comment_id: int | None = None
    content: str
    status: str
    user: UserBrief | None = None
    created_at: datetime
    updated_at: datetime
    replies_count: int = 0
    replies: list[CommentOut] = []

    model_config = ConfigDict(from_attributes=True)


class CommentAdminOut(CommentOut):
    approved_by: int | None = None
    approved_at: datetime | None = None
    report_count: int = 0
    last_reported_at: datetime | None = None
    report_reason: str | None = None
    admin_note: str | None = None
    moderator_notes: str | None = None
    deleted_by: int | None = None
    deleted_at: datetime | None = None
    deleted_reason: str | None = None


class CommentList(BaseModel):
    comments: list[CommentOut]
    meta: PageMeta


class CommentAdminList(BaseModel):
    comments: list[CommentAdminOut]
    meta: PageMeta


class CommentCreateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)
    parent_comment_id: int | None = None


class CommentUpdateRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class CommentDeleteRequest(BaseModel):
    reason: str | None = Field(None, max_length=1000)


class CommentModerationRequest(BaseModel):
    admin_note: str | None = Field(None, max_length=2000)


# ============================================================================
# NEWSLETTER
# ============================================================================


class NewsletterEmailRequest(BaseModel):
    email: EmailStr


class NewsletterTokenRequest(BaseModel):
    email: EmailStr
    token: str = Field(..., min_length=1, max_length=255)


class NewsletterSubscriberOut(BaseModel):
    id: int
    email: str
    user_id: int | None = None
    is_verified: bool
    subscribed_at: datetime
    unsubscribed_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NewsletterSubscriberList(BaseModel):
    subscribers: list[NewsletterSubscriberOut]
    meta: PageMeta


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class NotificationMessage(BaseModel):
    title: str
    body: str


class NotificationAudienceOut(BaseModel):
    audience_type: str
    audience_value: str | None = None

    model_config = ConfigDict(from_attributes=True)


class NotificationOut(BaseModel):
    id: int
    type: str
    message: NotificationMessage
    audiences: list[NotificationAudienceOut] = []
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationList(BaseModel):
    notifications: list[NotificationOut]
    meta: PageMeta


class NotificationCreateRequest(BaseModel):
    type: NotificationType
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1, max_length=5000)
    audience: NotificationAudience = NotificationAudience.ALL_USERS
    user_ids: list[int] | None = None

    @model_validator(mode="after")
    def _user_ids_for_specific_users(self):
        if self.audience == NotificationAudience.SPECIFIC_USERS and not self.user_ids:
            raise ValueError("user_ids is required when audience is specific_users.")
        return self


class UserNotificationOut(BaseModel):
    id: int
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime
    notification: NotificationOut

    model_config = ConfigDict(from_attributes=True)


class UserNotificationList(BaseModel):
    notifications: list[UserNotificationOut]
    meta: PageMeta


class UnreadCount(BaseModel):
    count: int


class MarkedCount(BaseModel):
    updated: int
