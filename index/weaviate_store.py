"""
Weaviate-backed vector and record store.

Candidates and opportunities live in two collections with self-provided
vectors on an HNSW index using cosine distance. Filterable fields are stored
as properties (lower-cased where matching is case-insensitive) and the full
record, minus its embedding, is kept as JSON so reads are lossless.
"""

import asyncio
import logging
import os
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import weaviate
import weaviate.classes as wvc
from weaviate.classes.config import (
    Configure,
    DataType,
    Property,
    Tokenization,
    VectorDistances,
)
from weaviate.classes.data import DataObject
from weaviate.exceptions import WeaviateBaseError
from weaviate.util import generate_uuid5

from api.errors import RetrievalUnavailable
from api.models import (
    CandidateRecord,
    CandidateStatus,
    HybridFilters,
    OpportunityRecord,
    OpportunityStatus,
)

from .base import (
    Collection,
    SIMILARITY_TOLERANCE,
    meets_floor,
    normalize_terms,
)

logger = logging.getLogger(__name__)

class WeaviateStore:
    """
    Vector and record store on a Weaviate instance.

    The Weaviate v4 client is synchronous; calls run in the default executor
    so the event loop is never blocked.
    """

    def __init__(self, weaviate_url: Optional[str] = None):
        """
        Initialize the store.

        Args:
            weaviate_url: URL of the Weaviate instance
        """
        self.weaviate_url = weaviate_url or os.getenv(
            "WEAVIATE_URL", "http://localhost:8080"
        )
        self.client: Optional[weaviate.WeaviateClient] = None
        self.collection_names = {
            Collection.CANDIDATES: "Candidate",
            Collection.OPPORTUNITIES: "Opportunity",
        }

    async def initialize(self) -> None:
        """
        Connect to Weaviate and create the collections if missing.

        Raises:
            RetrievalUnavailable: If Weaviate cannot be reached
        """
        try:
            logger.info(f"Connecting to Weaviate at {self.weaviate_url}")

            url_parts = self.weaviate_url.replace("http://", "").replace("https://", "")
            if ":" in url_parts:
                host, port = url_parts.split(":")
                port = int(port)
            else:
                host = url_parts
                port = 8080

            self.client = await self._run(
                lambda: weaviate.connect_to_local(
                    host=host,
                    port=port,
                    additional_config=wvc.init.AdditionalConfig(
                        timeout=wvc.init.Timeout(init=30, query=30, insert=60)
                    ),
                )
            )

            if not await self._run(self.client.is_ready):
                raise RetrievalUnavailable("Weaviate is not ready")

            await self._run(self._create_schemas)
            logger.info("Weaviate store initialized")

        except WeaviateBaseError as e:
            raise RetrievalUnavailable(f"Weaviate initialization failed: {e}")

    def _create_schemas(self) -> None:
        collections = self.client.collections

        candidate_properties = [
            Property(
                name="entity_id",
                data_type=DataType.TEXT,
                tokenization=Tokenization.FIELD,
            ),
            Property(
                name="status", data_type=DataType.TEXT, tokenization=Tokenization.FIELD
            ),
            Property(
                name="subjects_norm",
                data_type=DataType.TEXT_ARRAY,
                tokenization=Tokenization.FIELD,
            ),
            Property(
                name="preferred_countries_norm",
                data_type=DataType.TEXT_ARRAY,
                tokenization=Tokenization.FIELD,
            ),
            Property(name="years_experience", data_type=DataType.NUMBER),
            Property(name="min_salary", data_type=DataType.NUMBER),
            Property(name="profile_quality", data_type=DataType.NUMBER),
            Property(
                name="record_json",
                data_type=DataType.TEXT,
                index_filterable=False,
                index_searchable=False,
            ),
        ]

        opportunity_properties = [
            Property(
                name="entity_id",
                data_type=DataType.TEXT,
                tokenization=Tokenization.FIELD,
            ),
            Property(
                name="status", data_type=DataType.TEXT, tokenization=Tokenization.FIELD
            ),
            Property(
                name="required_subjects_norm",
                data_type=DataType.TEXT_ARRAY,
                tokenization=Tokenization.FIELD,
            ),
            Property(
                name="target_country_norm",
                data_type=DataType.TEXT,
                tokenization=Tokenization.FIELD,
            ),
            Property(name="salary", data_type=DataType.NUMBER),
            Property(
                name="record_json",
                data_type=DataType.TEXT,
                index_filterable=False,
                index_searchable=False,
            ),
        ]

        for collection, properties in (
            (Collection.CANDIDATES, candidate_properties),
            (Collection.OPPORTUNITIES, opportunity_properties),
        ):
            name = self.collection_names[collection]
            if collections.exists(name):
                continue

            collections.create(
                name=name,
                properties=properties,
                vector_config=Configure.Vectors.self_provided(
                    vector_index_config=Configure.VectorIndex.hnsw(
                        distance_metric=VectorDistances.COSINE
                    )
                ),
                inverted_index_config=Configure.inverted_index(),
            )
            logger.info(f"Created {name} collection")

    async def _run(self, fn):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except WeaviateBaseError as e:
            raise RetrievalUnavailable(f"Weaviate request failed: {e}")

    def _collection(self, collection: Collection):
        if not self.client:
            raise RetrievalUnavailable("Weaviate client not initialized")
        return self.client.collections.get(self.collection_names[collection])

    def _candidate_properties(self, candidate: CandidateRecord) -> Dict[str, Any]:
        return {
            "entity_id": candidate.id,
            "status": candidate.status.value,
            "subjects_norm": sorted(normalize_terms(candidate.subjects)),
            "preferred_countries_norm": sorted(
                normalize_terms(candidate.preferred_countries)
            ),
            "years_experience": candidate.years_experience,
            # 0 means "no minimum stated" so the salary-ceiling filter passes
            "min_salary": candidate.min_salary or 0,
            "profile_quality": candidate.profile_quality or 0,
            "record_json": candidate.model_dump_json(exclude={"embedding"}),
        }

    def _opportunity_properties(
        self, opportunity: OpportunityRecord
    ) -> Dict[str, Any]:
        return {
            "entity_id": opportunity.id,
            "status": opportunity.status.value,
            "required_subjects_norm": sorted(
                normalize_terms(opportunity.required_subjects)
            ),
            "target_country_norm": opportunity.target_country.strip().lower(),
            "salary": opportunity.salary,
            "record_json": opportunity.model_dump_json(exclude={"embedding"}),
        }

    async def _upsert(
        self, collection: Collection, rows: List[Tuple[str, Dict, Optional[List]]]
    ) -> int:
        if not rows:
            return 0

        target = self._collection(collection)

        objects_to_insert = [
            DataObject(
                properties=properties,
                vector=vector,
                uuid=generate_uuid5(entity_id),
            )
            for entity_id, properties, vector in rows
        ]

        # Deterministic uuids make the batch insert overwrite existing objects
        result = await self._run(lambda: target.data.insert_many(objects_to_insert))

        if result.has_errors:
            logger.error(f"{collection.value} indexing errors: {len(result.errors)}")
            for error in result.errors.values():
                logger.error(f"{collection.value} indexing error: {error}")
            raise RetrievalUnavailable(
                f"Failed to index {len(result.errors)} of {len(rows)} "
                f"{collection.value}"
            )

        logger.info(f"Indexed {len(rows)} {collection.value}")
        return len(rows)

    async def upsert_candidates(self, candidates: List[CandidateRecord]) -> int:
        return await self._upsert(
            Collection.CANDIDATES,
            [(c.id, self._candidate_properties(c), c.embedding) for c in candidates],
        )

    async def upsert_opportunities(
        self, opportunities: List[OpportunityRecord]
    ) -> int:
        return await self._upsert(
            Collection.OPPORTUNITIES,
            [
                (o.id, self._opportunity_properties(o), o.embedding)
                for o in opportunities
            ],
        )

    @staticmethod
    def _extract_vector(obj) -> Optional[List[float]]:
        vector = obj.vector
        if isinstance(vector, dict):
            vector = vector.get("default")
        return list(vector) if vector else None

    def _to_candidate(self, obj) -> CandidateRecord:
        record = CandidateRecord.model_validate_json(obj.properties["record_json"])
        return record.model_copy(update={"embedding": self._extract_vector(obj)})

    def _to_opportunity(self, obj) -> OpportunityRecord:
        record = OpportunityRecord.model_validate_json(obj.properties["record_json"])
        return record.model_copy(update={"embedding": self._extract_vector(obj)})

    async def _fetch_by_ids(self, collection: Collection, ids: List[str]) -> List:
        if not ids:
            return []
        target = self._collection(collection)
        response = await self._run(
            lambda: target.query.fetch_objects(
                filters=wvc.query.Filter.by_property("entity_id").contains_any(ids),
                include_vector=True,
                limit=len(ids),
            )
        )
        return response.objects

    async def get_candidate(self, candidate_id: str) -> Optional[CandidateRecord]:
        objects = await self._fetch_by_ids(Collection.CANDIDATES, [candidate_id])
        return self._to_candidate(objects[0]) if objects else None

    async def get_opportunity(
        self, opportunity_id: str
    ) -> Optional[OpportunityRecord]:
        objects = await self._fetch_by_ids(Collection.OPPORTUNITIES, [opportunity_id])
        return self._to_opportunity(objects[0]) if objects else None

    async def get_candidates(
        self, candidate_ids: Iterable[str]
    ) -> Dict[str, CandidateRecord]:
        objects = await self._fetch_by_ids(Collection.CANDIDATES, list(candidate_ids))
        records = [self._to_candidate(obj) for obj in objects]
        return {record.id: record for record in records}

    async def get_opportunities(
        self, opportunity_ids: Iterable[str]
    ) -> Dict[str, OpportunityRecord]:
        objects = await self._fetch_by_ids(
            Collection.OPPORTUNITIES, list(opportunity_ids)
        )
        records = [self._to_opportunity(obj) for obj in objects]
        return {record.id: record for record in records}

    def _build_where_filter(
        self, filters: Optional[HybridFilters], collection: Collection
    ) -> wvc.query.Filter:
        """Build a Weaviate filter: ACTIVE status AND every set predicate."""
        is_candidate = collection == Collection.CANDIDATES
        active = (
            CandidateStatus.ACTIVE.value
            if is_candidate
            else OpportunityStatus.ACTIVE.value
        )
        filter_conditions = [wvc.query.Filter.by_property("status").equal(active)]

        if filters is not None:
            if filters.countries:
                countries = sorted(normalize_terms(filters.countries))
                if is_candidate:
                    filter_conditions.append(
                        wvc.query.Filter.by_property(
                            "preferred_countries_norm"
                        ).contains_any(countries)
                    )
                else:
                    country_filter = wvc.query.Filter.by_property(
                        "target_country_norm"
                    ).equal(countries[0])
                    for country in countries[1:]:
                        country_filter = country_filter | wvc.query.Filter.by_property(
                            "target_country_norm"
                        ).equal(country)
                    filter_conditions.append(country_filter)

            if filters.subjects:
                subjects = sorted(normalize_terms(filters.subjects))
                prop = "subjects_norm" if is_candidate else "required_subjects_norm"
                filter_conditions.append(
                    wvc.query.Filter.by_property(prop).contains_any(subjects)
                )

            if filters.min_experience is not None and is_candidate:
                filter_conditions.append(
                    wvc.query.Filter.by_property("years_experience").greater_or_equal(
                        filters.min_experience
                    )
                )

            if filters.max_salary is not None:
                prop = "min_salary" if is_candidate else "salary"
                filter_conditions.append(
                    wvc.query.Filter.by_property(prop).less_or_equal(
                        filters.max_salary
                    )
                )

        result_filter = filter_conditions[0]
        for condition in filter_conditions[1:]:
            result_filter = result_filter & condition

        return result_filter

    async def query(
        self,
        collection: Collection,
        embedding: Sequence[float],
        similarity_floor: float,
        limit: int,
        filters: Optional[HybridFilters] = None,
    ) -> List[Tuple[str, float]]:
        target = self._collection(collection)
        where_filter = self._build_where_filter(filters, collection)

        response = await self._run(
            lambda: target.query.near_vector(
                near_vector=list(embedding),
                distance=1.0 - similarity_floor + SIMILARITY_TOLERANCE,
                limit=limit,
                filters=where_filter,
                return_properties=["entity_id"],
                return_metadata=wvc.query.MetadataQuery(distance=True),
            )
        )

        hits = []
        for obj in response.objects:
            distance = obj.metadata.distance
            if distance is None:
                distance = 1.0
            similarity = min(max(1.0 - distance, 0.0), 1.0)
            if meets_floor(similarity, similarity_floor):
                hits.append((obj.properties["entity_id"], similarity))

        logger.info(
            f"Weaviate near-vector on {collection.value} returned {len(hits)} hits"
        )
        hits.sort(key=lambda hit: (-hit[1], hit[0]))
        return hits

    async def filter_candidates(
        self, filters: HybridFilters, limit: int
    ) -> List[CandidateRecord]:
        target = self._collection(Collection.CANDIDATES)
        where_filter = self._build_where_filter(filters, Collection.CANDIDATES)
        response = await self._run(
            lambda: target.query.fetch_objects(
                filters=where_filter,
                include_vector=True,
                limit=limit,
                sort=wvc.query.Sort.by_property("profile_quality", ascending=False)
                .by_property("years_experience", ascending=False)
                .by_property("entity_id"),
            )
        )
        return [self._to_candidate(obj) for obj in response.objects]

    async def filter_opportunities(
        self, filters: HybridFilters, limit: int
    ) -> List[OpportunityRecord]:
        target = self._collection(Collection.OPPORTUNITIES)
        where_filter = self._build_where_filter(filters, Collection.OPPORTUNITIES)
        response = await self._run(
            lambda: target.query.fetch_objects(
                filters=where_filter,
                include_vector=True,
                limit=limit,
                sort=wvc.query.Sort.by_property("salary", ascending=False)
                .by_property("entity_id"),
            )
        )
        return [self._to_opportunity(obj) for obj in response.objects]

    def close(self) -> None:
        """Close the Weaviate client connection."""
        if self.client:
            self.client.close()
            logger.info("Weaviate connection closed")
