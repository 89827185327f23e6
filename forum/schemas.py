from pydantic import BaseModel, EmailStr, Field


# --- User ---

class UserCreate(BaseModel):
    username: str = Field(min_length=2, max_length=100, pattern=r"^[a-zA-Z0-9]+$")
    password: str = Field(min_length=6)
    email: EmailStr
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=2, max_length=100, pattern=r"^[a-zA-Z0-9]+$")
    password: str | None = Field(None, min_length=6)
    email: EmailStr | None = None
    bio: str | None = None
    image: str | None = Field(None, max_length=500)


class UserCreateRequest(BaseModel):
    user: UserCreate


class UserLoginRequest(BaseModel):
    user: UserLogin


class UserUpdateRequest(BaseModel):
    user: UserUpdate


# --- Channel ---

class ChannelCreate(BaseModel):
    title: str = Field(min_length=3, max_length=300)
    description: str = Field(min_length=3)


class ChannelUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1)


class ChannelCreateRequest(BaseModel):
    channel: ChannelCreate


class ChannelUpdateRequest(BaseModel):
    channel: ChannelUpdate


# --- Topic ---

class TopicCreate(BaseModel):
    title: str = Field(min_length=3, max_length=300)
    description: str = Field(min_length=3)


class TopicUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1)


class TopicCreateRequest(BaseModel):
    topic: TopicCreate


class TopicUpdateRequest(BaseModel):
    topic: TopicUpdate


# --- Message ---

class MessageCreate(BaseModel):
    body: str = Field(min_length=1)


class MessageUpdate(BaseModel):
    body: str = Field(min_length=1)


class MessageCreateRequest(BaseModel):
    message: MessageCreate


class MessageUpdateRequest(BaseModel):
    message: MessageUpdate


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_users: int
    total_channels: int
    total_topics: int
    total_messages: int
    total_follows: int
    cache_info: dict = {}
