"""Collection management (superusers only)."""

from typing import Any, Dict, Iterable, Mapping, Union

from ..models import CollectionModel
from .base_service import encode_segment
from .crud_service import CrudService


class CollectionService(CrudService[CollectionModel]):
    model = CollectionModel

    @property
    def base_crud_path(self) -> str:
        return "/api/collections"

    async def import_collections(
        self,
        collections: Iterable[Union[CollectionModel, Mapping[str, Any]]],
        delete_missing: bool = False,
    ) -> bool:
        """Import collection definitions.

        With ``delete_missing`` every local collection absent from the
        import is deleted together with its records.
        """
        payload = [
            c.model_dump(by_alias=True) if isinstance(c, CollectionModel) else dict(c)
            for c in collections
        ]
        await self._send(
            "PUT",
            f"{self.base_crud_path}/import",
            body={"collections": payload, "deleteMissing": delete_missing},
        )
        return True

    async def get_scaffolds(self) -> Dict[str, CollectionModel]:
        """Return default collection models keyed by collection type."""
        return await self._send(
            "GET",
            f"{self.base_crud_path}/meta/scaffolds",
            response_model=Dict[str, CollectionModel],
        )

    async def truncate(self, collection_id_or_name: str) -> bool:
        """Delete every record of a collection."""
        await self._send(
            "DELETE",
            f"{self.base_crud_path}/{encode_segment(collection_id_or_name)}/truncate",
        )
        return True
