import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    BigInteger,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr, relationship

from .database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String(255), unique=True, nullable=True)
    display_name = Column(String(255))
    email = Column(String(255), unique=True, nullable=False)
    auth_provider = Column(String(255))
    is_active = Column(Boolean, default=True, nullable=False)
    deleted = Column(Boolean, default=False, nullable=False)
    description = Column(Text, default="", nullable=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)

    teams = relationship(
        "TeamMember",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="TeamMember.user_id",
    )


class Team(Base):
    __tablename__ = "teams"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, default="", nullable=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)

    members = relationship("TeamMember", back_populates="team", cascade="all, delete-orphan")


class TeamMember(Base):
    __tablename__ = "team_members"
    team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), primary_key=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), primary_key=True)
    role = Column(String(16), nullable=False, default="member")
    invite_from = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    user = relationship("User", back_populates="teams", foreign_keys=[user_id])
    team = relationship("Team", back_populates="members")


class Tag(Base):
    __tablename__ = "tags"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(255), unique=True, nullable=False)
    description = Column(Text)
    color = Column(BigInteger, nullable=False, default=0)


class Platform(Base):
    __tablename__ = "platforms"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), unique=True, nullable=False)
    description = Column(Text, default="", nullable=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)
    owner_team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)

    owner_team = relationship("Team")
    tags = relationship("Tag", secondary="platform_tags")


class System(Base):
    __tablename__ = "systems"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, default="", nullable=False)
    manufacturer = Column(String, default="", nullable=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)
    owner_team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)

    owner_team = relationship("Team")
    tags = relationship("Tag", secondary="system_tags")


class Core(Base):
    __tablename__ = "cores"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug = Column(String(255), unique=True, nullable=False)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, default="", nullable=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)
    system_id = Column(UUID(as_uuid=True), ForeignKey("systems.id"), nullable=False)
    owner_team_id = Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)

    system = relationship("System")
    owner_team = relationship("Team")
    tags = relationship("Tag", secondary="core_tags")


class Game(Base):
    __tablename__ = "games"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="", nullable=False)
    short_description = Column(String(255), default="", nullable=False)
    year = Column(Integer, nullable=False)
    publisher = Column(String, default="", nullable=False)
    developer = Column(String, default="", nullable=False)
    links = Column(JSON, default=dict)
    system_id = Column(UUID(as_uuid=True), ForeignKey("systems.id"), nullable=False)
    system_unique_id = Column(Integer, nullable=False)

    system = relationship("System")
    tags = relationship("Tag", secondary="game_tags")
    artifacts = relationship("Artifact", secondary="game_artifacts")

    __table_args__ = (sa.UniqueConstraint("system_id", "system_unique_id", name="games_system_unique_id_key"),)


class CoreTag(Base):
    __tablename__ = "core_tags"
    core_id = Column(UUID(as_uuid=True), ForeignKey("cores.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class PlatformTag(Base):
    __tablename__ = "platform_tags"
    platform_id = Column(UUID(as_uuid=True), ForeignKey("platforms.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class SystemTag(Base):
    __tablename__ = "system_tags"
    system_id = Column(UUID(as_uuid=True), ForeignKey("systems.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class GameTag(Base):
    __tablename__ = "game_tags"
    game_id = Column(UUID(as_uuid=True), ForeignKey("games.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)


class Artifact(Base):
    """A file known by its digests; rows are shared between releases."""

    __tablename__ = "artifacts"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    filename = Column(String, nullable=False)
    mime_type = Column(String, nullable=False, default="application/octet-stream")
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    sha256 = Column(String(64), nullable=True)
    sha512 = Column(String(128), nullable=True)
    size = Column(BigInteger, nullable=False)
    storage_key = Column(String, nullable=True)
    download_url = Column(String, nullable=True)

    __table_args__ = (
        sa.UniqueConstraint("sha256", "sha512", name="artifacts_digest_key"),
        sa.CheckConstraint(
            "sha256 IS NOT NULL OR sha512 IS NOT NULL OR download_url IS NOT NULL",
            name="artifacts_known_source",
        ),
    )


class ReleaseMixin:
    """Columns shared by core and system releases."""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    version = Column(String(255), nullable=False)
    notes = Column(Text, default="", nullable=False)
    date_released = Column(DateTime, nullable=False, default=_utcnow)
    date_uploaded = Column(DateTime, nullable=False, default=_utcnow)
    prerelease = Column(Boolean, nullable=False, default=False)
    yanked = Column(Boolean, nullable=False, default=False)
    links = Column(JSON, default=dict)
    meta = Column("metadata", JSON, default=dict)

    @declared_attr
    def uploader_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    @declared_attr
    def owner_team_id(cls):
        return Column(UUID(as_uuid=True), ForeignKey("teams.id"), nullable=False)

    @declared_attr
    def uploader(cls):
        return relationship("User")

    @declared_attr
    def owner_team(cls):
        return relationship("Team")


class CoreRelease(ReleaseMixin, Base):
    __tablename__ = "core_releases"
    core_id = Column(UUID(as_uuid=True), ForeignKey("cores.id"), nullable=False)
    platform_id = Column(UUID(as_uuid=True), ForeignKey("platforms.id"), nullable=False)

    core = relationship("Core")
    platform = relationship("Platform")
    artifacts = relationship("Artifact", secondary="core_release_artifacts", order_by="Artifact.filename")

    __table_args__ = (
        sa.UniqueConstraint("core_id", "platform_id", "version", name="core_releases_core_platform_version_key"),
    )


class SystemRelease(ReleaseMixin, Base):
    __tablename__ = "system_releases"
    system_id = Column(UUID(as_uuid=True), ForeignKey("systems.id"), nullable=False)

    system = relationship("System")
    artifacts = relationship("Artifact", secondary="system_release_artifacts", order_by="Artifact.filename")

    __table_args__ = (sa.UniqueConstraint("version", name="system_releases_version_key"),)


class CoreReleaseArtifact(Base):
    __tablename__ = "core_release_artifacts"
    core_release_id = Column(UUID(as_uuid=True), ForeignKey("core_releases.id"), primary_key=True)
    artifact_id = Column(UUID(as_uuid=True), ForeignKey("artifacts.id"), primary_key=True)


class SystemReleaseArtifact(Base):
    __tablename__ = "system_release_artifacts"
    system_release_id = Column(UUID(as_uuid=True), ForeignKey("system_releases.id"), primary_key=True)
    artifact_id = Column(UUID(as_uuid=True), ForeignKey("artifacts.id"), primary_key=True)


class GameArtifact(Base):
    __tablename__ = "game_artifacts"
    game_id = Column(UUID(as_uuid=True), ForeignKey("games.id"), primary_key=True)
    artifact_id = Column(UUID(as_uuid=True), ForeignKey("artifacts.id"), primary_key=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default=dict)
    created_at = Column(DateTime, default=_utcnow)
