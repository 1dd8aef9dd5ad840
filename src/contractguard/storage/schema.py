"""
Relational schema for contracts, clauses and pgvector embeddings.
"""

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncEngine

EMBEDDING_DIMENSION = 768

metadata = MetaData()

contracts = Table(
    "contracts",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()),
    Column("tenant_id", UUID(as_uuid=True), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("type", Text, nullable=False, server_default="Other"),
    Column("counterparty", Text),
    Column("status", Text, nullable=False, server_default="queued", index=True),
    Column("file_path", Text, nullable=False),
    Column("file_type", Text, nullable=False, server_default="pdf"),
    Column("file_size", Integer, nullable=False, server_default="0"),
    Column("raw_text", Text),
    Column("effective_date", Date),
    Column("expiration_date", Date),
    Column("auto_renewal", Boolean, server_default="false"),
    Column("risk_score", Integer),
    Column("summary", Text),
    Column("error_message", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("last_analyzed_at", DateTime(timezone=True)),
    CheckConstraint(
        "type IN ('NDA', 'MSA', 'SaaS', 'Vendor', 'Employment', 'Other')",
        name="ck_contracts_type",
    ),
    CheckConstraint(
        "status IN ('queued', 'processing', 'ready', 'failed', 'archived')",
        name="ck_contracts_status",
    ),
    CheckConstraint(
        "risk_score >= 0 AND risk_score <= 100",
        name="ck_contracts_risk_score",
    ),
    Index("idx_contracts_tenant_status", "tenant_id", "status"),
)

contract_clauses = Table(
    "contract_clauses",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()),
    Column(
        "contract_id",
        UUID(as_uuid=True),
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("clause_type", Text, nullable=False),
    Column("text", Text, nullable=False),
    Column("page_number", Integer),
    Column("risk_level", Text, nullable=False, server_default="low"),
    Column("risk_explanation", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "risk_level IN ('critical', 'high', 'medium', 'low')",
        name="ck_clauses_risk_level",
    ),
    Index("idx_clauses_type_risk", "clause_type", "risk_level"),
)

contract_embeddings = Table(
    "contract_embeddings",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()),
    Column(
        "contract_id",
        UUID(as_uuid=True),
        ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("chunk_text", Text, nullable=False),
    Column("chunk_index", Integer, nullable=False),
    Column("chunk_hash", Text, nullable=False),
    Column("embedding", Vector(EMBEDDING_DIMENSION), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # One row per chunk content per contract; concurrent writers rely on this.
    UniqueConstraint("contract_id", "chunk_hash", name="uq_embeddings_contract_chunk_hash"),
    Index(
        "idx_embeddings_hnsw",
        "embedding",
        postgresql_using="hnsw",
        postgresql_with={"m": 16, "ef_construction": 64},
        postgresql_ops={"embedding": "vector_cosine_ops"},
    ),
)


async def create_schema(engine: AsyncEngine) -> None:
    """Enable pgvector and create all tables and indexes."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(metadata.create_all)
