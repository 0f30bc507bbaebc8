from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "system_settings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("provisional_k_factor", sa.Float(), nullable=False, server_default="40"),
        sa.Column("established_k_factor", sa.Float(), nullable=False, server_default="24"),
        sa.Column("initial_rating", sa.Float(), nullable=False, server_default="1200"),
        sa.Column("matches_for_established", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("rating_scale_min", sa.Float(), nullable=False, server_default="100"),
        sa.Column("rating_scale_max", sa.Float(), nullable=False, server_default="3000"),
    )
    op.create_table(
        "profile",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=True, unique=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("current_rating", sa.Float(), nullable=True),
        sa.Column("matches_played", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rating_status", sa.String(), nullable=False, server_default="Provisional"),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "event",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_type", sa.String(), nullable=False, server_default="match_singles_ranked"),
        sa.Column("status", sa.String(), nullable=False, server_default="scheduled"),
        sa.Column("created_by", sa.String(), sa.ForeignKey("profile.id"), nullable=True),
        sa.Column("winner_id", sa.String(), sa.ForeignKey("profile.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
    )
    op.create_table(
        "event_participant",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_id", sa.String(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("profile_id", sa.String(), sa.ForeignKey("profile.id"), nullable=False),
        sa.Column("side", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="player"),
        sa.UniqueConstraint("event_id", "side", name="uq_event_participant_side"),
    )
    op.create_table(
        "score_event",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_id", sa.String(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.UniqueConstraint("event_id", "seq", name="uq_score_event_event_id_seq"),
    )
    op.create_table(
        "match_score",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_id", sa.String(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("set_number", sa.Integer(), nullable=False),
        sa.Column("team_a_score", sa.Integer(), nullable=False),
        sa.Column("team_b_score", sa.Integer(), nullable=False),
        sa.Column("recorded_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "match_statistics",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("event_id", sa.String(), sa.ForeignKey("event.id"), nullable=False),
        sa.Column("player_id", sa.String(), sa.ForeignKey("profile.id"), nullable=False),
        sa.Column("aces", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winners", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("points_won", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        "ranking_history",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("profile_id", sa.String(), sa.ForeignKey("profile.id"), nullable=False),
        sa.Column("ranking_type", sa.String(), nullable=False, server_default="singles"),
        sa.Column("points", sa.Float(), nullable=False),
        sa.Column("points_change", sa.Float(), nullable=False),
        sa.Column("calculation_date", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ranking_history_profile_id", "ranking_history", ["profile_id"])
    op.create_table(
        "player_achievement",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("player_id", sa.String(), sa.ForeignKey("profile.id"), nullable=False),
        sa.Column("achievement_type", sa.String(), nullable=False),
        sa.Column("achieved_at", sa.DateTime(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
    )

def downgrade():
    op.drop_table("player_achievement")
    op.drop_index("ix_ranking_history_profile_id", table_name="ranking_history")
    op.drop_table("ranking_history")
    op.drop_table("match_statistics")
    op.drop_table("match_score")
    op.drop_table("score_event")
    op.drop_table("event_participant")
    op.drop_table("event")
    op.drop_table("profile")
    op.drop_table("system_settings")
