"""Generic CRUD operations shared by record and collection services."""

import logging
from typing import Any, Generic, List, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from ..core.errors import ApiError, ValidationError
from ..core.query import FilterLike, QuerySpec
from ..models import ListResult
from .base_service import BaseService, encode_segment

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_PER_PAGE = 30
DEFAULT_FULL_LIST_BATCH = 500
NOT_FOUND_MESSAGE = "The requested resource wasn't found."


class CrudService(BaseService, Generic[M]):
    """List, view, create, update and delete for one resource path."""

    model: Type[M]

    @property
    def base_crud_path(self) -> str:
        raise NotImplementedError

    @property
    def _list_model(self) -> Any:
        return ListResult[self.model]

    def _item_path(self, item_id: str) -> str:
        if not item_id:
            raise ValidationError("Missing required record id")
        return f"{self.base_crud_path}/{encode_segment(item_id)}"

    async def get_list(
        self,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        query: Optional[QuerySpec] = None,
    ) -> ListResult[M]:
        """Fetch one page of items.

        Raises:
            ValidationError: If page or per_page is not positive
        """
        spec = (query or QuerySpec()).replace(page=page, per_page=per_page)
        return await self._send(
            "GET",
            self.base_crud_path,
            query=spec,
            response_model=self._list_model,
        )

    async def get_full_list(
        self,
        query: Optional[QuerySpec] = None,
        batch_size: int = DEFAULT_FULL_LIST_BATCH,
    ) -> List[M]:
        """Fetch every item by walking pages of ``batch_size``.

        Totals are skipped; paging stops at the first short page.
        """
        base = query or QuerySpec()
        items: List[M] = []
        page = 1
        while True:
            spec = base.replace(page=page, per_page=batch_size, skip_total=True)
            result = await self._send(
                "GET",
                self.base_crud_path,
                query=spec,
                response_model=self._list_model,
            )
            items.extend(result.items)
            if len(result.items) < batch_size:
                break
            page += 1
        logger.debug(f"Fetched {len(items)} items from {self.base_crud_path} in {page} pages")
        return items

    async def get_first_list_item(
        self, filter: FilterLike, query: Optional[QuerySpec] = None
    ) -> M:
        """Return the first item matching ``filter``.

        Raises:
            ApiError: 404 if nothing matches
        """
        spec = (query or QuerySpec()).replace(
            filter=filter, page=1, per_page=1, skip_total=True
        )
        result = await self._send(
            "GET",
            self.base_crud_path,
            query=spec,
            response_model=self._list_model,
        )
        if not result.items:
            raise ApiError(
                404,
                NOT_FOUND_MESSAGE,
                url=self.pipeline.build_url(self.base_crud_path, spec),
            )
        return result.items[0]

    async def get_one(self, item_id: str, query: Optional[QuerySpec] = None) -> M:
        return await self._send(
            "GET", self._item_path(item_id), query=query, response_model=self.model
        )

    async def create(
        self, body: Mapping[str, Any], query: Optional[QuerySpec] = None
    ) -> M:
        """Create an item. ``FileUpload`` values in ``body`` switch to multipart."""
        return await self._send(
            "POST",
            self.base_crud_path,
            query=query,
            body=dict(body),
            response_model=self.model,
        )

    async def update(
        self,
        item_id: str,
        body: Mapping[str, Any],
        query: Optional[QuerySpec] = None,
    ) -> M:
        """Update an item. ``FileUpload`` values in ``body`` switch to multipart."""
        return await self._send(
            "PATCH",
            self._item_path(item_id),
            query=query,
            body=dict(body),
            response_model=self.model,
        )

    async def delete(self, item_id: str) -> bool:
        await self._send("DELETE", self._item_path(item_id))
        return True
