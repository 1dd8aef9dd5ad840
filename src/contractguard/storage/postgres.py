"""
PostgreSQL database adapter using SQLAlchemy async and pgvector.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncGenerator, Sequence
from uuid import UUID

import structlog
from sqlalchemy import delete, func, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from contractguard.models.clause import Clause, ExtractedClause
from contractguard.models.contract import Contract, ContractStatus, ContractType
from contractguard.models.embedding import EmbeddingRecord, SimilarityHit
from contractguard.storage.schema import contract_embeddings, contracts, create_schema

logger = structlog.get_logger(__name__)


class PostgresAdapter:
    """
    PostgreSQL database adapter.

    Handles all reads and writes for contracts, clauses and embeddings.
    """

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url

        self.engine = create_async_engine(
            self.database_url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
        )

        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("postgres_health_check_failed", error=str(e))
            return False

    async def create_schema(self) -> None:
        """Create tables, indexes and the pgvector extension."""
        await create_schema(self.engine)
        logger.info("postgres_schema_created")

    # =========================================================================
    # Contract Operations
    # =========================================================================

    async def create_contract(self, contract: Contract) -> Contract:
        """Create a new contract record."""
        async with self.session() as session:
            await session.execute(
                text("""
                    INSERT INTO contracts (
                        id, tenant_id, name, type, counterparty, status,
                        file_path, file_type, file_size, created_at, updated_at
                    ) VALUES (
                        :id, :tenant_id, :name, :type, :counterparty, :status,
                        :file_path, :file_type, :file_size, :created_at, :updated_at
                    )
                """),
                {
                    "id": contract.id,
                    "tenant_id": contract.tenant_id,
                    "name": contract.name,
                    "type": contract.type.value,
                    "counterparty": contract.counterparty,
                    "status": contract.status.value,
                    "file_path": contract.file_path,
                    "file_type": contract.file_type.value,
                    "file_size": contract.file_size,
                    "created_at": contract.created_at,
                    "updated_at": contract.updated_at,
                },
            )
        logger.info("contract_created", contract_id=str(contract.id))
        return contract

    async def get_contract(
        self,
        contract_id: UUID,
        tenant_id: UUID | None = None,
    ) -> Contract | None:
        """Get a contract by ID, optionally scoped to a tenant."""
        query = "SELECT * FROM contracts WHERE id = :id"
        params: dict[str, Any] = {"id": contract_id}
        if tenant_id is not None:
            query += " AND tenant_id = :tenant_id"
            params["tenant_id"] = tenant_id

        async with self.session() as session:
            result = await session.execute(text(query), params)
            row = result.mappings().fetchone()
            if row:
                return Contract.model_validate(dict(row))
            return None

    async def list_contract_ids(
        self,
        tenant_id: UUID,
        status: ContractStatus = ContractStatus.READY,
        contract_types: Sequence[ContractType] | None = None,
    ) -> list[UUID]:
        """IDs of a tenant's contracts in the given status."""
        query = "SELECT id FROM contracts WHERE tenant_id = :tenant_id AND status = :status"
        params: dict[str, Any] = {"tenant_id": tenant_id, "status": status.value}

        if contract_types:
            query += " AND type = ANY(:types)"
            params["types"] = [ContractType(t).value for t in contract_types]

        query += " ORDER BY created_at"

        async with self.session() as session:
            result = await session.execute(text(query), params)
            return [row[0] for row in result.fetchall()]

    async def update_contract_status(
        self,
        contract_id: UUID,
        status: ContractStatus,
        error_message: str | None = None,
    ) -> None:
        """Update contract status, recording or clearing the error message."""
        async with self.session() as session:
            await session.execute(
                text("""
                    UPDATE contracts
                    SET status = :status, error_message = :error_message, updated_at = :now
                    WHERE id = :id
                """),
                {
                    "id": contract_id,
                    "status": status.value,
                    "error_message": error_message,
                    "now": datetime.now(timezone.utc),
                },
            )
        logger.info("contract_status_updated", contract_id=str(contract_id), status=status.value)

    async def claim_for_processing(self, contract_id: UUID) -> bool:
        """Move a contract to processing unless a run already holds it."""
        async with self.session() as session:
            result = await session.execute(
                text("""
                    UPDATE contracts
                    SET status = 'processing', error_message = NULL, updated_at = :now
                    WHERE id = :id AND status <> 'processing'
                    RETURNING id
                """),
                {"id": contract_id, "now": datetime.now(timezone.utc)},
            )
            claimed = result.fetchone() is not None
        logger.info("contract_claim", contract_id=str(contract_id), claimed=claimed)
        return claimed

    async def update_contract_type(
        self,
        contract_id: UUID,
        contract_type: ContractType,
        counterparty: str | None = None,
    ) -> None:
        """Record a detected contract type and counterparty."""
        async with self.session() as session:
            await session.execute(
                text("""
                    UPDATE contracts
                    SET type = :type,
                        counterparty = COALESCE(:counterparty, counterparty),
                        updated_at = :now
                    WHERE id = :id
                """),
                {
                    "id": contract_id,
                    "type": contract_type.value,
                    "counterparty": counterparty,
                    "now": datetime.now(timezone.utc),
                },
            )

    async def update_contract_analysis(
        self,
        contract_id: UUID,
        *,
        raw_text: str,
        risk_score: int,
        summary: str,
        effective_date: date | None,
        expiration_date: date | None,
        auto_renewal: bool,
    ) -> None:
        """Persist final analysis results and mark the contract ready."""
        now = datetime.now(timezone.utc)
        async with self.session() as session:
            await session.execute(
                text("""
                    UPDATE contracts
                    SET status = 'ready',
                        raw_text = :raw_text,
                        risk_score = :risk_score,
                        summary = :summary,
                        effective_date = :effective_date,
                        expiration_date = :expiration_date,
                        auto_renewal = :auto_renewal,
                        error_message = NULL,
                        last_analyzed_at = :now,
                        updated_at = :now
                    WHERE id = :id
                """),
                {
                    "id": contract_id,
                    "raw_text": raw_text,
                    "risk_score": risk_score,
                    "summary": summary,
                    "effective_date": effective_date,
                    "expiration_date": expiration_date,
                    "auto_renewal": auto_renewal,
                    "now": now,
                },
            )
        logger.info("contract_analysis_saved", contract_id=str(contract_id), risk_score=risk_score)

    # =========================================================================
    # Clause Operations
    # =========================================================================

    async def delete_clauses(self, contract_id: UUID) -> int:
        """Delete all clauses for a contract."""
        async with self.session() as session:
            result = await session.execute(
                text("DELETE FROM contract_clauses WHERE contract_id = :contract_id"),
                {"contract_id": contract_id},
            )
            return result.rowcount

    async def insert_clauses(
        self,
        contract_id: UUID,
        clauses: list[ExtractedClause],
    ) -> int:
        """Insert extracted clauses for a contract."""
        if not clauses:
            return 0

        async with self.session() as session:
            await session.execute(
                text("""
                    INSERT INTO contract_clauses (
                        contract_id, clause_type, text, page_number,
                        risk_level, risk_explanation
                    ) VALUES (
                        :contract_id, :clause_type, :text, :page_number,
                        :risk_level, :risk_explanation
                    )
                """),
                [
                    {
                        "contract_id": contract_id,
                        "clause_type": c.clause_type.value,
                        "text": c.text,
                        "page_number": c.page_number,
                        "risk_level": c.risk_level.value,
                        "risk_explanation": c.risk_explanation,
                    }
                    for c in clauses
                ],
            )
        logger.info("clauses_inserted", contract_id=str(contract_id), count=len(clauses))
        return len(clauses)

    async def list_clauses(self, contract_id: UUID) -> list[Clause]:
        """Get all clauses for a contract."""
        async with self.session() as session:
            result = await session.execute(
                text("""
                    SELECT * FROM contract_clauses
                    WHERE contract_id = :contract_id
                    ORDER BY created_at
                """),
                {"contract_id": contract_id},
            )
            return [Clause.model_validate(dict(row)) for row in result.mappings().fetchall()]

    # =========================================================================
    # Embedding Operations
    # =========================================================================

    async def insert_embeddings(self, records: list[EmbeddingRecord]) -> int:
        """
        Insert embedding rows, ignoring chunks already stored.

        Returns the number of rows actually inserted.
        """
        if not records:
            return 0

        stmt = (
            pg_insert(contract_embeddings)
            .values([
                {
                    "contract_id": r.contract_id,
                    "chunk_index": r.chunk_index,
                    "chunk_text": r.chunk_text,
                    "chunk_hash": r.chunk_hash,
                    "embedding": r.embedding,
                }
                for r in records
            ])
            .on_conflict_do_nothing(index_elements=["contract_id", "chunk_hash"])
        )
        async with self.session() as session:
            result = await session.execute(stmt)
            inserted = result.rowcount

        logger.info(
            "embeddings_inserted",
            contract_id=str(records[0].contract_id),
            submitted=len(records),
            inserted=inserted,
        )
        return inserted

    async def delete_embeddings(self, contract_id: UUID) -> int:
        """Delete all embeddings for a contract."""
        async with self.session() as session:
            result = await session.execute(
                delete(contract_embeddings).where(contract_embeddings.c.contract_id == contract_id)
            )
            return result.rowcount

    async def get_existing_chunk_hashes(self, contract_id: UUID) -> set[str]:
        """Content hashes already embedded for a contract."""
        async with self.session() as session:
            result = await session.execute(
                select(contract_embeddings.c.chunk_hash).where(
                    contract_embeddings.c.contract_id == contract_id
                )
            )
            return {row[0] for row in result.fetchall()}

    async def count_embeddings(self, contract_id: UUID) -> int:
        async with self.session() as session:
            result = await session.execute(
                select(func.count()).select_from(contract_embeddings).where(
                    contract_embeddings.c.contract_id == contract_id
                )
            )
            return result.scalar_one()

    async def semantic_search(
        self,
        query_vector: list[float],
        contract_ids: Sequence[UUID],
        limit: int,
    ) -> list[SimilarityHit]:
        """Nearest chunks by cosine similarity within the given contracts."""
        if not contract_ids:
            return []

        distance = contract_embeddings.c.embedding.cosine_distance(query_vector)
        stmt = (
            select(
                contract_embeddings.c.id.label("embedding_id"),
                contract_embeddings.c.contract_id,
                contract_embeddings.c.chunk_text,
                contract_embeddings.c.chunk_index,
                (1 - distance).label("similarity_score"),
                contracts.c.name.label("contract_name"),
                contracts.c.type.label("contract_type"),
                contracts.c.risk_score,
            )
            .join(contracts, contracts.c.id == contract_embeddings.c.contract_id)
            .where(contract_embeddings.c.contract_id.in_(list(contract_ids)))
            .order_by(distance)
            .limit(limit)
        )

        async with self.session() as session:
            result = await session.execute(stmt)
            return [SimilarityHit.model_validate(dict(row)) for row in result.mappings().fetchall()]
