"""
MongoDB service helpers.

Builds pipeline stages for collection operations and runs them through the
owning client. Methods return whatever the client's ``execute_pipeline``
returns, so the same helpers serve the sync and the async client.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..types import PipelineStage


class MongoService:
    """A named MongoDB service of a Stitch app."""

    def __init__(self, client: Any, service_name: str) -> None:
        self.client = client
        self.service = service_name

    def db(self, name: str) -> "Database":
        return Database(self.client, self.service, name)


class Database:
    def __init__(self, client: Any, service: str, name: str) -> None:
        self.client = client
        self.service = service
        self.name = name

    def collection(self, name: str) -> "Collection":
        return Collection(self, name)


class Collection:
    """A collection; every operation executes one pipeline."""

    def __init__(self, db: Database, name: str) -> None:
        self.db = db
        self.name = name

    def _base_args(self) -> Dict[str, Any]:
        return {"database": self.db.name, "collection": self.name}

    def _stage(self, action: str, args: Dict[str, Any]) -> PipelineStage:
        return PipelineStage(action=action, args=args, service=self.db.service)

    def _execute(self, stages: List[PipelineStage]) -> Any:
        return self.db.client.execute_pipeline(stages)

    def find(self, query: Mapping[str, Any], project: Optional[Mapping[str, Any]] = None) -> Any:
        args = self._base_args()
        args["query"] = query
        if project is not None:
            args["project"] = project
        return self._execute([self._stage("find", args)])

    def insert(self, docs: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]]) -> Any:
        """Insert one document or a list of documents."""
        items = [docs] if isinstance(docs, Mapping) else list(docs)
        return self._execute([
            PipelineStage(action="literal", args={"items": items}),
            self._stage("insert", self._base_args()),
        ])

    def _update_stage(
        self,
        query: Mapping[str, Any],
        update: Mapping[str, Any],
        upsert: bool = False,
        multi: bool = False,
    ) -> PipelineStage:
        args = self._base_args()
        args["query"] = query
        args["update"] = update
        if upsert:
            args["upsert"] = True
        if multi:
            args["multi"] = True
        return self._stage("update", args)

    def update_one(self, query: Mapping[str, Any], update: Mapping[str, Any]) -> Any:
        return self._execute([self._update_stage(query, update)])

    def update_many(self, query: Mapping[str, Any], update: Mapping[str, Any]) -> Any:
        return self._execute([self._update_stage(query, update, multi=True)])

    def upsert(self, query: Mapping[str, Any], update: Mapping[str, Any]) -> Any:
        return self._execute([self._update_stage(query, update, upsert=True)])

    def _delete(self, query: Mapping[str, Any], single_doc: bool) -> Any:
        args = self._base_args()
        args["query"] = query
        args["singleDoc"] = single_doc
        return self._execute([self._stage("delete", args)])

    def delete_one(self, query: Mapping[str, Any]) -> Any:
        return self._delete(query, True)

    def delete_many(self, query: Mapping[str, Any]) -> Any:
        return self._delete(query, False)
