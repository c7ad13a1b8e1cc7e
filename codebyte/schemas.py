"""Response payloads shared across routers."""

from datetime import datetime

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    id: int
    email: str
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str
    avatar: str | None = None
    bio: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class CategoryRef(BaseModel):
    """The single shape a category takes when embedded in another payload."""
    id: int
    title: str
    slug: str
    bg_color: str | None = None
    icon: str | None = None

    class Config:
        from_attributes = True


class CategoryResponse(CategoryRef):
    description: str | None = None
    content: str | None = None
    order: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CourseSectionResponse(BaseModel):
    id: int
    title: str
    content: str
    order: int

    class Config:
        from_attributes = True


class CourseResponse(BaseModel):
    id: int
    title: str
    description: str | None = None
    level: str | None = None
    rating: float = 0
    student_count: int = 0
    duration: str | None = None
    instructor: str | None = None
    bg_color: str | None = None
    price: float | None = None
    currency: str | None = None
    is_premium: bool = False
    is_published: bool = False
    category: CategoryRef | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class CodeExample(BaseModel):
    title: str
    code: str
    description: str


class DocumentationSectionSummary(BaseModel):
    id: int
    title: str
    slug: str
    description: str | None = None
    content: str | None = None
    order: int = 0
    is_published: bool = True

    class Config:
        from_attributes = True


class DocumentationResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str | None = None
    content: str
    category: CategoryRef | None = None
    read_time: str | None = None
    key_features: list[str] = Field(default_factory=list)
    code_examples: list[CodeExample] = Field(default_factory=list)
    sections: list[DocumentationSectionSummary] = Field(default_factory=list)
    pro_tip: str | None = None
    is_published: bool = True
    price: float | None = None
    currency: str | None = None
    parent_id: int | None = None
    order: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class PurchaseResponse(BaseModel):
    id: int
    user_id: int
    resource_type: str
    documentation_id: int | None = None
    course_id: int | None = None
    amount: float
    currency: str | None = None
    stripe_session_id: str | None = None
    status: str
    purchase_date: datetime | None = None

    class Config:
        from_attributes = True
