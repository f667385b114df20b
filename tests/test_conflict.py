import pytest
from couchtestclass import CouchTestClass
from fakecouch import FakeCouch, leaf_bodies

from couchsync.api.conflict import Conflict, conflict_for
from couchsync.api.database import Database
from couchsync.api.document import Doc, DynamicDoc
from couchsync.api.error import (
    CouchBulkPartialFailureError,
    CouchLostUpdateError,
    CouchNotFoundError,
)
from couchsync.api.server import CouchServer
from couchsync.utils import assert_not_null


class Person(Doc):
    def __init__(self, name: str = ""):
        super().__init__()
        self.name = name


async def make_conflict(fake: FakeCouch, db: Database, key: str, *names: str) -> None:
    fake.branch(db.name, key, [{"name": n} for n in names])


class TestConflict(CouchTestClass):
    @pytest.mark.asyncio
    async def test_single_leaf_is_no_conflict(self, db: Database) -> None:
        self.mark_test_step("Insert p1 and look for a conflict on it")
        await db.insert(DynamicDoc({"_id": "p1", "name": "Alice"}))
        assert await db.conflict_for("p1") is None

        self.mark_test_step("Edit p1 a few times, still a single open leaf")
        doc = await db.retrieve("p1")
        for i in range(3):
            doc["count"] = i
            await db.insert(doc)

        assert await db.conflict_for("p1") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("leaves", [2, 3, 5])
    async def test_conflict_counts_every_open_leaf(
        self, fake_couch: FakeCouch, db: Database, leaves: int
    ) -> None:
        self.mark_test_step(f"Create p1 with {leaves} open leaves")
        await make_conflict(fake_couch, db, "p1", *[f"name{i}" for i in range(leaves)])

        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        assert conflict.key == "p1"
        assert conflict.database is db
        assert conflict.revisions_count == leaves
        assert conflict.is_real
        assert sorted(r["name"] for r in conflict.revisions()) == sorted(
            f"name{i}" for i in range(leaves)
        )

    @pytest.mark.asyncio
    async def test_deleted_leaves_are_not_conflicts(
        self, fake_couch: FakeCouch, db: Database
    ) -> None:
        self.mark_test_step("Create p1 with two leaves and delete one of them")
        revs = fake_couch.branch(db.name, "p1", [{"name": "a"}, {"name": "b"}])
        await db.delete("p1", revs[1])
        assert await db.conflict_for("p1") is None

        self.mark_test_step("Delete the other leaf too, nothing is open any more")
        await db.delete("p1", revs[0])
        conflict = assert_not_null(
            await db.conflict_for("p1"), "Expected an empty conflict"
        )
        assert conflict.revisions_count == 0
        assert not conflict.is_real

    @pytest.mark.asyncio
    async def test_unknown_key(self, db: Database) -> None:
        with pytest.raises(CouchNotFoundError):
            await db.conflict_for("nope")

    @pytest.mark.asyncio
    async def test_resolve(self, fake_couch: FakeCouch, db: Database) -> None:
        self.mark_test_step("Create two divergent leaves for p1")
        await make_conflict(fake_couch, db, "p1", "Alice", "Bob")
        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        assert conflict.revisions_count == 2
        first_rev = conflict.revisions()[0]["_rev"]

        self.mark_test_step("Resolve with {Name: 'Solution'}")
        final = DynamicDoc({"Name": "Solution"})
        await conflict.solve_with(final)
        assert final.id_rev()[0] == "p1"
        assert final.id_rev()[1].startswith("3-")
        assert fake_couch.dbs[db.name]["p1"].revs[final.id_rev()[1]].parent == first_rev
        assert conflict.revisions_count == 0
        assert not conflict.is_real

        self.mark_test_step("Check p1 is no longer conflicted")
        assert await db.conflict_for("p1") is None
        current = await db.retrieve("p1")
        assert current["Name"] == "Solution"
        assert await db.conflicts_count(force_index=True) == 0

    @pytest.mark.asyncio
    async def test_resolve_with_typed_document(
        self, fake_couch: FakeCouch, db: Database
    ) -> None:
        await make_conflict(fake_couch, db, "p1", "Alice", "Bob")
        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        people = conflict.revisions(Person)
        assert all(isinstance(p, Person) for p in people)

        self.mark_test_step("Pick one of the revisions and make it the winner")
        winner = next(p for p in people if p.name == "Bob")
        await conflict.solve_with(winner)
        assert winner.id == "p1"
        assert await db.conflict_for("p1") is None
        saved = await db.retrieve("p1", Person)
        assert saved.name == "Bob"
        assert saved.rev == winner.rev

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(
        self, fake_couch: FakeCouch, db: Database
    ) -> None:
        await make_conflict(fake_couch, db, "p1", "Alice", "Bob")
        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        await conflict.solve_with(DynamicDoc({"Name": "Solution"}))
        bulk_path = f"/{db.name}/_bulk_docs"
        writes = fake_couch.count_requests("POST", bulk_path)
        assert writes == 1

        self.mark_test_step("Solving the same handle again writes nothing")
        await conflict.solve_with(DynamicDoc({"Name": "Other"}))
        assert fake_couch.count_requests("POST", bulk_path) == writes
        assert (await db.retrieve("p1"))["Name"] == "Solution"

    @pytest.mark.asyncio
    async def test_resolve_three_way(self, fake_couch: FakeCouch, db: Database) -> None:
        await make_conflict(fake_couch, db, "p1", "a", "b", "c")
        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        await conflict.solve_with(DynamicDoc({"name": "abc"}))
        assert fake_couch.open_leaf_count(db.name, "p1") == 1
        assert leaf_bodies(fake_couch, db.name, "p1")[0]["name"] == "abc"

    @pytest.mark.asyncio
    async def test_lost_update(self, fake_couch: FakeCouch, db: Database) -> None:
        self.mark_test_step("Two parties detect the same conflict")
        await make_conflict(fake_couch, db, "p1", "Alice", "Bob")
        mine = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        theirs = assert_not_null(await db.conflict_for("p1"), "Conflict not found")

        self.mark_test_step("The other party resolves first")
        await theirs.solve_with(DynamicDoc({"name": "Theirs"}))

        self.mark_test_step("Resolving the stale handle is a lost update")
        with pytest.raises(CouchLostUpdateError) as e:
            await mine.solve_with(DynamicDoc({"name": "Mine"}))

        assert e.value.key == "p1"
        assert mine.revisions_count == 2
        assert all("_deleted" not in r for r in mine.revisions())
        assert (await db.retrieve("p1"))["name"] == "Theirs"

        self.mark_test_step("Detect again, nothing left to do")
        assert await db.conflict_for("p1") is None

    @pytest.mark.asyncio
    async def test_lost_update_reported_per_document(self) -> None:
        fake = FakeCouch(atomic_bulk=False)
        await fake.start()
        server = CouchServer(fake.url)
        try:
            db = server.database("db1")
            await db.create()
            revs = fake.branch("db1", "p1", [{"name": "a"}, {"name": "b"}])
            conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")

            self.mark_test_step("Someone edits the second branch in the meantime")
            await db.insert(DynamicDoc({"_id": "p1", "_rev": revs[1], "name": "b2"}))

            with pytest.raises(CouchLostUpdateError) as e:
                await conflict.solve_with(DynamicDoc({"name": "final"}))

            assert len(e.value.failed) == 1
            assert e.value.errors[0].error == "conflict"
            assert isinstance(e.value, CouchBulkPartialFailureError)
            assert conflict.is_real
        finally:
            await server.close()
            await fake.close()

    @pytest.mark.asyncio
    async def test_revisions_are_copies(self, fake_couch: FakeCouch, db: Database) -> None:
        await make_conflict(fake_couch, db, "p1", "Alice", "Bob")
        conflict = assert_not_null(await db.conflict_for("p1"), "Conflict not found")
        conflict.revisions()[0]["name"] = "changed"
        assert "changed" not in [r["name"] for r in conflict.revisions()]

    @pytest.mark.asyncio
    async def test_conflict_from_replication(
        self, db: Database, other_db: Database
    ) -> None:
        self.mark_test_step("Edit p1 independently on both databases")
        await db.insert(DynamicDoc({"_id": "p1", "name": "from db1"}))
        await other_db.insert(DynamicDoc({"_id": "p1", "name": "from db2"}))

        self.mark_test_step("Replicate db1 into db2, which now holds both edits")
        await db.replicate_to(other_db)
        conflict = assert_not_null(
            await other_db.conflict_for("p1"), "Conflict not found"
        )
        assert conflict.revisions_count == 2
        assert await other_db.conflicts(force_index=True) == ["p1"]

        await conflict.solve_with(DynamicDoc({"name": "merged"}))
        assert await other_db.conflicts() == []
        assert await db.conflict_for("p1") is None


class TestConflictScan(CouchTestClass):
    @pytest.mark.asyncio
    async def test_missing_index(self, db: Database) -> None:
        self.mark_test_step("Without force_index a missing index is an error")
        with pytest.raises(CouchNotFoundError):
            await db.conflicts()

        with pytest.raises(CouchNotFoundError):
            await db.conflicts_count()

        assert not await db.has_view("conflicts", "all")

    @pytest.mark.asyncio
    async def test_force_index_on_empty_database(self, db: Database) -> None:
        self.mark_test_step("Scan with force_index creates the index")
        assert await db.conflicts(force_index=True) == []
        assert await db.has_view("conflicts", "all")

        self.mark_test_step("The index is reused from now on")
        assert await db.conflicts() == []
        assert await db.conflicts_count() == 0

    @pytest.mark.asyncio
    async def test_scan_and_count_agree(self, fake_couch: FakeCouch, db: Database) -> None:
        await db.insert(DynamicDoc({"_id": "clean", "name": "nobody"}))
        for key in ["k3", "k1", "k2"]:
            await make_conflict(fake_couch, db, key, "a", "b")

        keys = await db.conflicts(force_index=True)
        assert keys == ["k1", "k2", "k3"]
        assert await db.conflicts_count() == len(keys)

        self.mark_test_step("Resolve one of them and scan again")
        conflict = assert_not_null(await db.conflict_for("k2"), "Conflict not found")
        await conflict.solve_with(DynamicDoc({"name": "ab"}))
        keys = await db.conflicts()
        assert keys == ["k1", "k3"]
        assert await db.conflicts_count() == len(keys)

    @pytest.mark.asyncio
    async def test_index_next_to_other_views(self, db: Database) -> None:
        self.mark_test_step("A design document named conflicts already holds another view")
        await db.create_view("conflicts", "names", "function(doc) { emit(doc.name, null); }")
        await db.conflicts(force_index=True)

        ddoc = await db.retrieve("_design/conflicts")
        assert sorted(ddoc["views"].keys()) == ["all", "names"]
        assert ddoc["views"]["all"]["reduce"] == "_count"

    @pytest.mark.asyncio
    async def test_conflict_repr(self, fake_couch: FakeCouch, db: Database) -> None:
        revs = fake_couch.branch(db.name, "p1", [{"name": "a"}, {"name": "b"}])
        conflict = assert_not_null(await conflict_for(db, "p1"), "Conflict not found")
        assert isinstance(conflict, Conflict)
        assert repr(conflict) == f"Conflict(key='p1', revisions={revs})"
