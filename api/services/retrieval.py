"""
Vector retrieval service.

Wraps a VectorStore with input validation, the similarity contract
(similarity = 1 - cosine distance, in [0, 1], descending, ties by id) and the
record joins for both matching directions.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from api.errors import EntityNotFound, InvalidEmbedding, MissingEmbedding
from api.models import (
    CandidateRecord,
    HybridFilters,
    MatchCandidate,
    MatchOpportunity,
    OpportunityRecord,
)
from index.base import Collection, RecordStore, VectorStore, meets_floor

logger = logging.getLogger(__name__)


class VectorRetrievalService:
    """K-nearest retrieval over the candidate and opportunity collections."""

    def __init__(
        self, vector_store: VectorStore, record_store: RecordStore, dimension: int
    ):
        self.vector_store = vector_store
        self.record_store = record_store
        self.dimension = dimension

    def validate_embedding(self, embedding: Optional[Sequence[float]]) -> List[float]:
        if not embedding:
            raise InvalidEmbedding("Query embedding is empty")
        if len(embedding) != self.dimension:
            raise InvalidEmbedding(
                f"Query embedding has dimension {len(embedding)}, "
                f"expected {self.dimension}"
            )
        values = [float(value) for value in embedding]
        if not all(math.isfinite(value) for value in values):
            raise InvalidEmbedding("Query embedding contains non-finite values")
        return values

    async def retrieve(
        self,
        collection: Collection,
        query_embedding: Sequence[float],
        min_similarity: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[Tuple[str, float]]:
        """
        Find the nearest entities of a collection to a query embedding.

        Args:
            collection: Collection to search
            query_embedding: Query vector of the configured dimension
            min_similarity: Similarity floor in [0, 1]
            limit: Maximum number of hits, > 0
            filters: Optional discrete predicates ANDed with the floor

        Returns:
            (entity_id, similarity) pairs, similarity descending, ties by id

        Raises:
            InvalidEmbedding: If the query embedding is unusable
            ValueError: If min_similarity or limit is out of range
        """
        vector = self.validate_embedding(query_embedding)
        if not 0.0 <= min_similarity <= 1.0:
            raise ValueError(f"min_similarity must be in [0, 1], got {min_similarity}")
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        hits = await self.vector_store.query(
            collection, vector, min_similarity, limit, filters
        )

        clamped = [
            (entity_id, min(max(float(similarity), 0.0), 1.0))
            for entity_id, similarity in hits
        ]
        clamped = [hit for hit in clamped if meets_floor(hit[1], min_similarity)]
        clamped.sort(key=lambda hit: (-hit[1], hit[0]))
        return clamped[:limit]

    async def retrieve_for_opportunity(
        self,
        opportunity: OpportunityRecord,
        min_similarity: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[MatchCandidate]:
        """
        Candidates nearest to an opportunity's embedding.

        Raises:
            MissingEmbedding: If the opportunity was never embedded
        """
        if not opportunity.embedding:
            raise MissingEmbedding("Opportunity", opportunity.id)

        hits = await self.retrieve(
            Collection.CANDIDATES, opportunity.embedding, min_similarity, limit, filters
        )
        records = await self.record_store.get_candidates([hit[0] for hit in hits])

        matches = [
            MatchCandidate(
                candidate=records[entity_id],
                similarity=similarity,
                distance=1.0 - similarity,
            )
            for entity_id, similarity in hits
            if entity_id in records
        ]
        logger.info(
            f"Retrieved {len(matches)} candidates for opportunity {opportunity.id}"
        )
        return matches

    async def retrieve_for_candidate(
        self,
        candidate: CandidateRecord,
        min_similarity: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[MatchOpportunity]:
        """
        Opportunities nearest to a candidate's embedding.

        Raises:
            MissingEmbedding: If the candidate was never embedded
        """
        if not candidate.embedding:
            raise MissingEmbedding("Candidate", candidate.id)

        hits = await self.retrieve(
            Collection.OPPORTUNITIES,
            candidate.embedding,
            min_similarity,
            limit,
            filters,
        )
        records = await self.record_store.get_opportunities([hit[0] for hit in hits])

        matches = [
            MatchOpportunity(
                opportunity=records[entity_id],
                similarity=similarity,
                distance=1.0 - similarity,
            )
            for entity_id, similarity in hits
            if entity_id in records
        ]
        logger.info(
            f"Retrieved {len(matches)} opportunities for candidate {candidate.id}"
        )
        return matches

    async def similar_candidates(
        self, candidate: CandidateRecord, min_similarity: float, limit: int
    ) -> List[MatchCandidate]:
        """Other candidates nearest to a candidate, excluding itself."""
        if not candidate.embedding:
            raise MissingEmbedding("Candidate", candidate.id)

        hits = await self.retrieve(
            Collection.CANDIDATES, candidate.embedding, min_similarity, limit + 1
        )
        hits = [hit for hit in hits if hit[0] != candidate.id][:limit]
        records = await self.record_store.get_candidates([hit[0] for hit in hits])

        return [
            MatchCandidate(
                candidate=records[entity_id],
                similarity=similarity,
                distance=1.0 - similarity,
            )
            for entity_id, similarity in hits
            if entity_id in records
        ]

    async def similar_opportunities(
        self, opportunity: OpportunityRecord, min_similarity: float, limit: int
    ) -> List[MatchOpportunity]:
        """Other active opportunities nearest to an opportunity, excluding itself."""
        if not opportunity.embedding:
            raise MissingEmbedding("Opportunity", opportunity.id)

        hits = await self.retrieve(
            Collection.OPPORTUNITIES, opportunity.embedding, min_similarity, limit + 1
        )
        hits = [hit for hit in hits if hit[0] != opportunity.id][:limit]
        records = await self.record_store.get_opportunities([hit[0] for hit in hits])

        return [
            MatchOpportunity(
                opportunity=records[entity_id],
                similarity=similarity,
                distance=1.0 - similarity,
            )
            for entity_id, similarity in hits
            if entity_id in records
        ]

    async def hybrid_candidates(
        self,
        filters: HybridFilters,
        opportunity: Optional[OpportunityRecord],
        min_similarity: float,
        limit: int,
    ) -> List[MatchCandidate]:
        """
        Candidates matching discrete predicates, optionally ranked by vector.

        Without an opportunity the search is discrete only: results are
        ordered by profile quality then experience and carry similarity 1.0.
        """
        if opportunity is not None:
            return await self.retrieve_for_opportunity(
                opportunity, min_similarity, limit, filters
            )

        records = await self.record_store.filter_candidates(filters, limit)
        return [
            MatchCandidate(candidate=record, similarity=1.0, distance=0.0)
            for record in records
        ]

    async def hybrid_opportunities(
        self,
        filters: HybridFilters,
        candidate: Optional[CandidateRecord],
        min_similarity: float,
        limit: int,
    ) -> List[MatchOpportunity]:
        """Opportunity-side mirror of hybrid_candidates (discrete order: salary)."""
        if candidate is not None:
            return await self.retrieve_for_candidate(
                candidate, min_similarity, limit, filters
            )

        records = await self.record_store.filter_opportunities(filters, limit)
        return [
            MatchOpportunity(opportunity=record, similarity=1.0, distance=0.0)
            for record in records
        ]

    async def load_opportunity(self, opportunity_id: str) -> OpportunityRecord:
        opportunity = await self.record_store.get_opportunity(opportunity_id)
        if opportunity is None:
            raise EntityNotFound("Opportunity", opportunity_id)
        return opportunity

    async def load_candidate(self, candidate_id: str) -> CandidateRecord:
        candidate = await self.record_store.get_candidate(candidate_id)
        if candidate is None:
            raise EntityNotFound("Candidate", candidate_id)
        return candidate
