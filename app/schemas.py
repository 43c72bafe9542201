from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.models import ArticleStatus, NotificationType, UserRole


# --- User ---

class PublicUser(BaseModel):
    id: str
    username: str
    display_name: str | None = None
    bio: str | None = None


class UserBase(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: str = Field(max_length=255)
    display_name: str | None = Field(None, max_length=150)
    bio: str | None = None


class UserCreate(UserBase):
    role: UserRole = UserRole.READER


class UserUpdate(BaseModel):
    display_name: str | None = Field(None, max_length=150)
    bio: str | None = None


class UserResponse(UserBase):
    id: str
    role: UserRole
    is_active: bool
    created_at: datetime


class UserProfile(PublicUser):
    role: UserRole
    article_count: int
    follower_count: int
    following_count: int
    is_following: bool
    interests: list["CategorySummary"] = []
    created_at: datetime


class RoleUpdate(BaseModel):
    role: str


class FollowResponse(BaseModel):
    is_following: bool


class InterestsUpdate(BaseModel):
    category_ids: list[str] = []


# --- Category ---

class CategorySummary(BaseModel):
    id: str
    name: str
    slug: str


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    parent_id: str | None = None
    display_order: int = 0


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = None
    # "" detaches the category from its parent.
    parent_id: str | None = None
    display_order: int | None = None


class CategoryResponse(CategorySummary):
    description: str | None = None
    parent_id: str | None = None
    display_order: int
    created_at: datetime


class CategoryDetail(CategoryResponse):
    parent: CategorySummary | None = None
    children: list[CategorySummary] = []
    article_count: int = 0


class CategoryTree(CategoryResponse):
    children: list["CategoryTree"] = []


# --- Tag ---

class TagSummary(BaseModel):
    id: str
    name: str
    slug: str


class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    description: str | None = None


class TagUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    description: str | None = None


class TagResponse(TagSummary):
    description: str | None = None
    usage_count: int
    created_at: datetime


# --- Article ---

class ArticleBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    excerpt: str | None = None


class ArticleCreate(ArticleBase):
    status: ArticleStatus = ArticleStatus.DRAFT
    category_ids: list[str] = []
    tag_ids: list[str] = []


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)
    excerpt: str | None = None
    # None leaves the association untouched; a list replaces it wholesale.
    category_ids: list[str] | None = None
    tag_ids: list[str] | None = None


class StaffPickUpdate(BaseModel):
    is_staff_pick: bool


class ArticleListItem(BaseModel):
    id: str
    title: str
    slug: str
    excerpt: str | None
    status: ArticleStatus
    published_at: datetime | None
    view_count: int
    reading_time_minutes: int
    is_staff_pick: bool
    created_at: datetime
    author: PublicUser | None = None
    categories: list[CategorySummary] = []
    tags: list[TagSummary] = []


class ArticleDetail(ArticleListItem):
    content: str
    updated_at: datetime | None = None
    likes_count: int = 0
    comments_count: int = 0
    liked: bool = False
    bookmarked: bool = False


# --- Engagement ---

class LikeResponse(BaseModel):
    liked: bool
    likes_count: int


class BookmarkResponse(BaseModel):
    bookmarked: bool


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_id: str | None = None


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1)


class CommentResponse(BaseModel):
    id: str
    article_id: str
    parent_id: str | None = None
    content: str
    user: PublicUser | None = None
    created_at: datetime
    updated_at: datetime | None = None
    replies: list["CommentResponse"] = []


# --- Notification ---

class NotificationArticle(BaseModel):
    id: str
    slug: str
    title: str


class NotificationResponse(BaseModel):
    id: str
    type: NotificationType
    message: str
    read: bool
    actor: PublicUser | None = None
    article: NotificationArticle | None = None
    created_at: datetime


class UnreadCountResponse(BaseModel):
    count: int


# --- Search ---

class SearchResponse(BaseModel):
    articles: list[ArticleListItem] = []
    categories: list[CategoryResponse] = []
    tags: list[TagResponse] = []


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # Will be typed in router
    total: int
    page: int
    per_page: int
    pages: int


class ErrorResponse(BaseModel):
    detail: str
    code: str
    model_config = ConfigDict(json_schema_extra={"example": {"detail": "Resource not found", "code": "NOT_FOUND"}})


# Required for forward-reference resolution
UserProfile.model_rebuild()
CommentResponse.model_rebuild()
CategoryTree.model_rebuild()
