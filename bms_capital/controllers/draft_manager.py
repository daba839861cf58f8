"""Draft persistence for in-progress loan applications"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import TypeAdapter, ValidationError

from bms_capital.config import settings
from bms_capital.domain.exceptions import StorageError
from bms_capital.domain.loan_utils import generate_draft_name
from bms_capital.domain.models import ActionResult, DraftItem, LoanFormData
from bms_capital.infrastructure.observability.metrics import record_draft_operation
from bms_capital.infrastructure.storage.key_value import KeyValueStore
from bms_capital.infrastructure.storage.schemas import DraftPayloadSchema, DraftRecordSchema

DraftLoader = Callable[[LoanFormData, int], None]

_draft_list_adapter = TypeAdapter(List[DraftRecordSchema])


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DraftManager:
    """
    Named draft snapshots kept in a key-value store.

    Two keys are used: one holds the most recent payload for quick resume,
    the other a JSON list of drafts, most recent first, capped at
    max_draft_count. Every save and delete rewrites the full list.
    """

    def __init__(
        self,
        store: KeyValueStore,
        on_load_draft: DraftLoader | None = None,
        max_draft_count: int | None = None,
        draft_key: str | None = None,
        draft_list_key: str | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.store = store
        self.on_load_draft = on_load_draft
        self.max_draft_count = max_draft_count or settings.max_draft_count
        self.draft_key = draft_key or settings.draft_storage_key
        self.draft_list_key = draft_list_key or settings.draft_list_storage_key
        self.clock = clock

        self.drafts: List[DraftItem] = []
        self.is_draft_browser_open = False
        self.loaded_draft_id: Optional[str] = None
        self._last_id = 0

        self.reload()

    def reload(self) -> None:
        """Read the stored draft list into memory"""
        try:
            self.drafts = self._read_stored_list()
        except StorageError as e:
            logging.error(f"Failed to load draft list: {e}")
            self.drafts = []

    def _read_stored_list(self) -> List[DraftItem]:
        raw = self.store.get(self.draft_list_key)
        if not raw:
            return []
        try:
            entries = json.loads(raw)
        except json.JSONDecodeError as e:
            logging.warning(f"Ignoring unreadable draft list: {e}")
            return []
        if not isinstance(entries, list):
            return []

        drafts = []
        for entry in entries:
            try:
                drafts.append(DraftRecordSchema.model_validate(entry).to_item())
            except (ValidationError, TypeError, AttributeError, ValueError) as e:
                logging.warning(f"Skipping invalid draft entry: {e}")
        return drafts

    def _write_list(self, drafts: List[DraftItem]) -> None:
        records = [DraftRecordSchema.from_item(d) for d in drafts]
        self.store.set(self.draft_list_key, _draft_list_adapter.dump_json(records, by_alias=True).decode())

    def _next_id(self, taken: List[DraftItem]) -> str:
        """Millisecond timestamp, bumped past any id already issued or stored"""
        candidate = int(self.clock().timestamp() * 1000)
        highest = max([self._last_id] + [int(d.id) for d in taken if d.id.isdigit()])
        if candidate <= highest:
            candidate = highest + 1
        self._last_id = candidate
        return str(candidate)

    def save_draft(
        self,
        form_data: LoanFormData,
        current_step: int,
        customer_name: str | None = None,
    ) -> ActionResult:
        """
        Snapshot the form as a new draft at the head of the list.

        The draft is named after the selected customer when known, else the
        NIC, else a placeholder. Storage failures are reported in the result.
        """
        snapshot = LoanFormData.from_dict(replace(form_data, status="draft").to_dict())
        name = customer_name or generate_draft_name(None, snapshot.nic, snapshot.customer)

        try:
            payload = DraftPayloadSchema(form_data=snapshot.to_dict(), current_step=current_step)
            self.store.set(self.draft_key, payload.model_dump_json(by_alias=True))

            existing = self._read_stored_list()
            draft = DraftItem(
                id=self._next_id(existing),
                name=name,
                saved_at=self.clock().isoformat(timespec="milliseconds").replace("+00:00", "Z"),
                form_data=snapshot,
                current_step=current_step,
            )
            updated = [draft, *existing][: self.max_draft_count]
            self._write_list(updated)
        except StorageError as e:
            logging.error(f"Failed to save draft: {e}")
            record_draft_operation("save", False)
            return ActionResult(success=False, message="Could not save draft. Please try again.")

        self.drafts = updated
        record_draft_operation("save", True)
        return ActionResult(success=True, message="Draft saved successfully", draft_id=draft.id)

    def load_draft(self, draft_id: str) -> ActionResult:
        """Hand a stored draft to the loader and mark it as the active draft"""
        draft = next((d for d in self.drafts if d.id == draft_id), None)
        if draft is None:
            record_draft_operation("load", False)
            return ActionResult(success=False, message="Draft not found")

        if self.on_load_draft:
            form_copy = LoanFormData.from_dict(draft.form_data.to_dict())
            self.on_load_draft(form_copy, draft.current_step or 1)

        self.loaded_draft_id = draft_id
        self.is_draft_browser_open = False
        record_draft_operation("load", True)
        return ActionResult(success=True, message=f'Draft "{draft.name}" loaded', draft_id=draft_id)

    def load_last_draft(self) -> ActionResult:
        """Resume from the single most recent snapshot"""
        try:
            raw = self.store.get(self.draft_key)
        except StorageError as e:
            logging.error(f"Failed to read last draft: {e}")
            raw = None
        if not raw:
            return ActionResult(success=False, message="No saved draft to resume")

        try:
            payload = DraftPayloadSchema.model_validate_json(raw)
        except ValidationError as e:
            logging.warning(f"Ignoring unreadable last draft: {e}")
            return ActionResult(success=False, message="Saved draft could not be read")

        if self.on_load_draft:
            self.on_load_draft(LoanFormData.from_dict(payload.form_data), payload.current_step or 1)
        return ActionResult(success=True, message="Last draft restored")

    def delete_draft(self, draft_id: str) -> ActionResult:
        """Drop a draft; missing ids are ignored"""
        self.drafts = [d for d in self.drafts if d.id != draft_id]
        try:
            self._write_list(self.drafts)
        except StorageError as e:
            logging.warning(f"Failed to persist draft deletion: {e}")
        if self.loaded_draft_id == draft_id:
            self.loaded_draft_id = None
        record_draft_operation("delete", True)
        return ActionResult(success=True, message="Draft deleted")

    def open_draft_browser(self) -> None:
        self.is_draft_browser_open = True

    def close_draft_browser(self) -> None:
        self.is_draft_browser_open = False
