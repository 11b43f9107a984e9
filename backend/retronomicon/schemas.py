from datetime import datetime
from typing import Optional, Any, Dict, List, Literal
from pydantic import AliasChoices, BaseModel, EmailStr, ConfigDict, Field
from uuid import UUID


def _metadata_field() -> Any:
    return Field(default_factory=dict, validation_alias=AliasChoices("meta", "metadata"))


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    username: Optional[str] = None
    display_name: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class UserRef(BaseModel):
    id: UUID
    username: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class TeamCreate(BaseModel):
    slug: str
    name: str
    description: str = ""
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TeamOut(BaseModel):
    id: UUID
    slug: str
    name: str
    description: str = ""
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = _metadata_field()
    model_config = ConfigDict(from_attributes=True)


class TeamRef(BaseModel):
    id: UUID
    slug: str
    name: str
    model_config = ConfigDict(from_attributes=True)


class TeamMemberAdd(BaseModel):
    user_id: Optional[UUID] = None
    email: Optional[EmailStr] = None
    role: Literal["owner", "admin", "member"] = "member"


class TeamMemberOut(BaseModel):
    user: UserOut
    role: str
    model_config = ConfigDict(from_attributes=True)


class TagCreate(BaseModel):
    slug: str
    description: Optional[str] = None
    color: int = 0


class TagOut(BaseModel):
    id: UUID
    slug: str
    description: Optional[str] = None
    color: int
    model_config = ConfigDict(from_attributes=True)


class TagAttach(BaseModel):
    tag: str


class CatalogCreate(BaseModel):
    slug: str
    name: str
    description: str = ""
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    owner_team: str


class CatalogUpdate(BaseModel):
    slug: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    links: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None
    owner_team: Optional[str] = None


class PlatformOut(BaseModel):
    id: UUID
    slug: str
    name: str
    description: str
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = _metadata_field()
    owner_team: TeamRef
    tags: List[TagOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class SystemCreate(CatalogCreate):
    manufacturer: str = ""


class SystemOut(PlatformOut):
    manufacturer: str


class SystemRef(BaseModel):
    id: UUID
    slug: str
    model_config = ConfigDict(from_attributes=True)


class CoreCreate(CatalogCreate):
    system: str


class CoreOut(PlatformOut):
    system: SystemRef


class CoreRef(BaseModel):
    id: UUID
    slug: str
    name: str
    model_config = ConfigDict(from_attributes=True)


class PlatformRef(BaseModel):
    id: UUID
    slug: str
    name: str
    model_config = ConfigDict(from_attributes=True)


class GameCreate(BaseModel):
    name: str
    year: int
    system: str
    system_unique_id: int
    description: str = ""
    short_description: str = ""
    publisher: str = ""
    developer: str = ""
    links: Dict[str, str] = Field(default_factory=dict)


class GameOut(BaseModel):
    id: UUID
    name: str
    year: int
    system: SystemRef
    system_unique_id: int
    short_description: str
    publisher: str
    developer: str
    tags: List[TagOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class ArtifactOut(BaseModel):
    id: UUID
    filename: str
    mime_type: str
    created_at: datetime
    size: int
    sha256: Optional[str] = None
    sha512: Optional[str] = None
    download_url: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class ExternalArtifactIn(BaseModel):
    filename: str
    size: int = Field(ge=0)
    mime_type: str = "application/octet-stream"
    download_url: Optional[str] = None
    sha256: Optional[str] = Field(default=None, pattern=r"^[0-9a-fA-F]{64}$")
    sha512: Optional[str] = Field(default=None, pattern=r"^[0-9a-fA-F]{128}$")


class ReleaseCreate(BaseModel):
    version: str
    notes: str = ""
    prerelease: bool = False
    date_released: Optional[datetime] = None
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CoreReleaseCreate(ReleaseCreate):
    platform: str


class ReleaseUpdate(BaseModel):
    notes: Optional[str] = None
    links: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None
    prerelease: Optional[bool] = None


class ReleaseOut(BaseModel):
    id: UUID
    version: str
    notes: str
    date_released: datetime
    date_uploaded: datetime
    prerelease: bool
    yanked: bool
    links: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, Any] = _metadata_field()
    uploader: UserRef
    owner_team: TeamRef
    artifacts: List[ArtifactOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class CoreReleaseOut(ReleaseOut):
    core: CoreRef
    platform: PlatformRef


class SystemReleaseOut(ReleaseOut):
    system: SystemRef


class AuditReportRow(BaseModel):
    action: str
    count: int
