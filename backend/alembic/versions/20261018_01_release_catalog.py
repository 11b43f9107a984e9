"""catalog, teams, artifacts and release ledger tables"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261018_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _owned_catalog_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('links', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('owner_team_id', sa.UUID(as_uuid=True), sa.ForeignKey('teams.id'), nullable=False),
    ]


def _release_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('version', sa.String(255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.Column('date_released', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('date_uploaded', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('prerelease', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('yanked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('links', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('uploader_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('owner_team_id', sa.UUID(as_uuid=True), sa.ForeignKey('teams.id'), nullable=False),
    ]


def _tag_link(table: str, column: str, parent: str) -> None:
    op.create_table(
        table,
        sa.Column(column, sa.UUID(as_uuid=True), sa.ForeignKey(f'{parent}.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('tag_id', sa.UUID(as_uuid=True), sa.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    )


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('username', sa.String(255), nullable=True, unique=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('auth_provider', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('links', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'teams',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('links', sa.JSON(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_table(
        'team_members',
        sa.Column('team_id', sa.UUID(as_uuid=True), sa.ForeignKey('teams.id'), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='member'),
        sa.Column('invite_from', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
    )
    op.create_table(
        'tags',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('slug', sa.String(255), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('color', sa.BigInteger(), nullable=False, server_default='0'),
    )
    op.create_table(
        'platforms',
        *_owned_catalog_columns(),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
    )
    op.create_table(
        'systems',
        *_owned_catalog_columns(),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('manufacturer', sa.String(), nullable=False, server_default=''),
    )
    op.create_table(
        'cores',
        *_owned_catalog_columns(),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('system_id', sa.UUID(as_uuid=True), sa.ForeignKey('systems.id'), nullable=False),
    )
    op.create_table(
        'games',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('short_description', sa.String(255), nullable=False, server_default=''),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('publisher', sa.String(), nullable=False, server_default=''),
        sa.Column('developer', sa.String(), nullable=False, server_default=''),
        sa.Column('links', sa.JSON(), nullable=True),
        sa.Column('system_id', sa.UUID(as_uuid=True), sa.ForeignKey('systems.id'), nullable=False),
        sa.Column('system_unique_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('system_id', 'system_unique_id', name='games_system_unique_id_key'),
    )
    _tag_link('core_tags', 'core_id', 'cores')
    _tag_link('platform_tags', 'platform_id', 'platforms')
    _tag_link('system_tags', 'system_id', 'systems')
    _tag_link('game_tags', 'game_id', 'games')

    op.create_table(
        'artifacts',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('filename', sa.String(), nullable=False),
        sa.Column('mime_type', sa.String(), nullable=False, server_default='application/octet-stream'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('sha256', sa.String(64), nullable=True),
        sa.Column('sha512', sa.String(128), nullable=True),
        sa.Column('size', sa.BigInteger(), nullable=False),
        sa.Column('storage_key', sa.String(), nullable=True),
        sa.Column('download_url', sa.String(), nullable=True),
        sa.UniqueConstraint('sha256', 'sha512', name='artifacts_digest_key'),
        sa.CheckConstraint(
            'sha256 IS NOT NULL OR sha512 IS NOT NULL OR download_url IS NOT NULL',
            name='artifacts_known_source',
        ),
    )
    op.create_table(
        'core_releases',
        *_release_columns(),
        sa.Column('core_id', sa.UUID(as_uuid=True), sa.ForeignKey('cores.id'), nullable=False),
        sa.Column('platform_id', sa.UUID(as_uuid=True), sa.ForeignKey('platforms.id'), nullable=False),
        sa.UniqueConstraint('core_id', 'platform_id', 'version', name='core_releases_core_platform_version_key'),
    )
    op.create_table(
        'system_releases',
        *_release_columns(),
        sa.Column('system_id', sa.UUID(as_uuid=True), sa.ForeignKey('systems.id'), nullable=False),
        sa.UniqueConstraint('version', name='system_releases_version_key'),
    )
    op.create_table(
        'core_release_artifacts',
        sa.Column('core_release_id', sa.UUID(as_uuid=True), sa.ForeignKey('core_releases.id'), primary_key=True),
        sa.Column('artifact_id', sa.UUID(as_uuid=True), sa.ForeignKey('artifacts.id'), primary_key=True),
    )
    op.create_table(
        'system_release_artifacts',
        sa.Column('system_release_id', sa.UUID(as_uuid=True), sa.ForeignKey('system_releases.id'), primary_key=True),
        sa.Column('artifact_id', sa.UUID(as_uuid=True), sa.ForeignKey('artifacts.id'), primary_key=True),
    )
    op.create_table(
        'game_artifacts',
        sa.Column('game_id', sa.UUID(as_uuid=True), sa.ForeignKey('games.id'), primary_key=True),
        sa.Column('artifact_id', sa.UUID(as_uuid=True), sa.ForeignKey('artifacts.id'), primary_key=True),
    )
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String(), nullable=True),
        sa.Column('target_id', sa.UUID(as_uuid=True), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )


def downgrade() -> None:
    for table in (
        'audit_logs',
        'game_artifacts',
        'system_release_artifacts',
        'core_release_artifacts',
        'system_releases',
        'core_releases',
        'artifacts',
        'game_tags',
        'system_tags',
        'platform_tags',
        'core_tags',
        'games',
        'cores',
        'systems',
        'platforms',
        'tags',
        'team_members',
        'teams',
        'users',
    ):
        op.drop_table(table)
