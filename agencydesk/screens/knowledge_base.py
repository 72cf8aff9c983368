from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from agencydesk.errors import NotFound, PermissionDenied
from agencydesk.screens.base import Confirm, ScreenController, validate_required
from agencydesk.store.client import FilterSpec


logger = logging.getLogger("agencydesk.screens.knowledge_base")


class KnowledgeBaseController(ScreenController):
    """Help articles. Customers see published articles only; admins manage the full list."""

    screen_name = "knowledge_base"
    entity_name = "article"
    search_fields = ("title", "content", "tags")
    requires_admin = False

    async def fetch(self) -> list[dict[str, Any]]:
        limit = self.settings.default_list_limit
        spec = FilterSpec(order_by="created_at", descending=True, limit=limit)
        if not self.session.is_admin:
            spec = FilterSpec(eq={"is_published": True}, order_by="created_at", descending=True, limit=limit)
        result = await self.client.query("knowledge_base_articles", spec)
        return result.raise_for_error().rows

    def _article(self, article_id: Any) -> dict[str, Any]:
        for article in self.rows:
            if str(article["id"]) == str(article_id):
                return article
        raise NotFound("Article", article_id)

    def _require_admin(self) -> None:
        if not self.session.is_admin:
            raise PermissionDenied("Only admins can manage knowledge base articles")

    async def increment_view(self, article_id: Any) -> int:
        """Bump the view counter without a toast or reload. Returns the new count."""
        article = self._article(article_id)
        views = (article.get("view_count") or 0) + 1
        result = await self.client.mutate(
            "knowledge_base_articles", "update", {"view_count": views}, match={"id": article["id"]}
        )
        if result.error is not None:
            logger.warning(
                "knowledge_base.view_count_failed",
                extra={"row_id": str(article["id"]), "error_code": result.error.code, "error": result.error.message},
            )
            return article.get("view_count") or 0
        article["view_count"] = views
        return views

    async def vote(self, article_id: Any, helpful: bool) -> None:
        article = self._article(article_id)
        column = "helpful_count" if helpful else "not_helpful_count"
        await self.run_mutation(
            "vote",
            lambda: self.client.mutate(
                "knowledge_base_articles",
                "update",
                {column: (article.get(column) or 0) + 1},
                match={"id": article["id"]},
            ),
            success="Thanks for your feedback",
        )

    async def create(self, payload: Mapping[str, Any]) -> None:
        self._require_admin()
        self.require_valid(validate_required(payload, ("title", "content")))
        values = {**payload, "tags": list(payload.get("tags") or []), "is_published": bool(payload.get("is_published"))}
        await self.run_mutation(
            "create",
            lambda: self.client.mutate("knowledge_base_articles", "insert", values),
            success="Article created successfully",
        )

    async def update(self, article_id: Any, payload: Mapping[str, Any]) -> None:
        self._require_admin()
        values = {
            key: value
            for key, value in payload.items()
            if key not in {"id", "view_count", "helpful_count", "not_helpful_count"}
        }
        await self.run_mutation(
            "update",
            lambda: self.client.mutate("knowledge_base_articles", "update", values, match={"id": article_id}),
            success="Article updated successfully",
        )

    async def toggle_publish(self, article_id: Any) -> None:
        self._require_admin()
        article = self._article(article_id)
        published = not article.get("is_published")
        await self.run_mutation(
            "toggle_publish",
            lambda: self.client.mutate(
                "knowledge_base_articles", "update", {"is_published": published}, match={"id": article["id"]}
            ),
            success="Article published" if published else "Article unpublished",
        )

    async def delete(self, article_id: Any, confirm: Confirm | None = None) -> None:
        self._require_admin()
        await self.run_mutation(
            "delete",
            lambda: self.client.mutate("knowledge_base_articles", "delete", match={"id": article_id}),
            success="Article deleted successfully",
            confirm=confirm,
        )
