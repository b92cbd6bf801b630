"""Tests for the in-memory storage backends."""

from decimal import Decimal
from uuid import uuid4

import pytest

from triad3.models.declaration import Declaration, ImportStatus
from triad3.models.records import RecordCollection
from triad3.services.storage import NotFoundError, StorageError

from conftest import ACCOUNT_ID, OTHER_ACCOUNT_ID


def _declaration(user_id=ACCOUNT_ID, ano=2024) -> Declaration:
    return Declaration(user_id=user_id, ano=ano, arquivo_original="irpf.pdf")


class TestInMemoryDeclarationStorage:

    @pytest.mark.asyncio
    async def test_create_and_get(self, declaration_storage):
        declaration = await declaration_storage.create_declaration(_declaration())
        stored = await declaration_storage.get_declaration(declaration.id)
        assert stored.id == declaration.id
        assert stored.status_label() == "Processando"

    @pytest.mark.asyncio
    async def test_duplicate_id(self, declaration_storage):
        declaration = await declaration_storage.create_declaration(_declaration())
        with pytest.raises(StorageError):
            await declaration_storage.create_declaration(declaration)

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, declaration_storage):
        """Mutating a returned declaration does not touch the stored one."""
        declaration = await declaration_storage.create_declaration(_declaration())
        stored = await declaration_storage.get_declaration(declaration.id)
        stored.recibo = "changed"
        assert (await declaration_storage.get_declaration(declaration.id)).recibo is None

    @pytest.mark.asyncio
    async def test_update_applies_changes(self, declaration_storage):
        declaration = await declaration_storage.create_declaration(_declaration())
        updated = await declaration_storage.update_declaration(
            declaration.id,
            {"valor_pagar": "10.50", "status": ImportStatus.imported()},
        )
        assert updated.valor_pagar == Decimal("10.50")
        assert updated.status_label() == "Importada"
        assert updated.updated_at >= declaration.updated_at

    @pytest.mark.asyncio
    async def test_update_missing(self, declaration_storage):
        with pytest.raises(NotFoundError):
            await declaration_storage.update_declaration(uuid4(), {"recibo": "x"})

    @pytest.mark.asyncio
    async def test_list_filters_by_account_and_year(self, declaration_storage):
        await declaration_storage.create_declaration(_declaration(ano=2023))
        await declaration_storage.create_declaration(_declaration(ano=2024))
        await declaration_storage.create_declaration(_declaration(user_id=OTHER_ACCOUNT_ID))

        assert len(await declaration_storage.list_declarations(ACCOUNT_ID)) == 2
        assert len(await declaration_storage.list_declarations(ACCOUNT_ID, 2024)) == 1
        assert len(await declaration_storage.list_declarations(OTHER_ACCOUNT_ID)) == 1


class TestInMemoryRecordStorage:

    @pytest.mark.asyncio
    async def test_insert_and_list(self, record_storage):
        declaration_id = uuid4()
        rows = [
            {"user_id": ACCOUNT_ID, "declaracao_id": declaration_id, "valor": 1},
            {"user_id": ACCOUNT_ID, "declaracao_id": uuid4(), "valor": 2},
            {"user_id": OTHER_ACCOUNT_ID, "declaracao_id": declaration_id, "valor": 3},
        ]
        assert await record_storage.insert_many(RecordCollection.RENDIMENTOS, rows) == 3

        mine = await record_storage.list_records(RecordCollection.RENDIMENTOS, ACCOUNT_ID)
        assert len(mine) == 2
        linked = await record_storage.list_records(
            RecordCollection.RENDIMENTOS, ACCOUNT_ID, declaration_id
        )
        assert [row["valor"] for row in linked] == [1]

    @pytest.mark.asyncio
    async def test_row_without_account_is_rejected(self, record_storage):
        """The whole batch is refused, nothing is stored."""
        rows = [{"user_id": ACCOUNT_ID}, {"nome": "orphan"}]
        with pytest.raises(StorageError):
            await record_storage.insert_many(RecordCollection.DIVIDAS, rows)
        assert await record_storage.list_records(RecordCollection.DIVIDAS, ACCOUNT_ID) == []
