"""
Tests for lifecycle hooks: HookEvent parsing, HookPipeline ordering and the
three completion styles, and hooks wired through Document subclasses.
"""

import asyncio

import pytest

from corvid.models import ALWAYS, Document, HookEvent, HookPipeline, hook
from corvid.types import Number, String


# ============================================================================
# HookEvent
# ============================================================================


class TestHookEvent:

    @pytest.mark.parametrize("name", ["presave", "pre_save", "preSave", "PRE-SAVE"])
    def test_name_normalization(self, name):
        assert HookEvent.parse(name) is HookEvent.PRESAVE

    def test_create_alias(self):
        assert HookEvent.parse("create") is HookEvent.ONCREATE
        assert HookEvent.parse("on_create") is HookEvent.ONCREATE

    def test_unknown_event(self):
        with pytest.raises(ValueError, match="Unknown hook event"):
            HookEvent.parse("beforeSave")

    def test_seven_events(self):
        assert len(HookEvent) == 7


# ============================================================================
# HookPipeline
# ============================================================================


class TestHookPipeline:

    def test_receivers_order(self):
        pipeline = HookPipeline("Thing")

        def on_b(doc):
            pass

        def on_a(doc):
            pass

        def always_one(doc):
            pass

        def always_two(doc):
            pass

        pipeline.connect("presave", on_b, field="b")
        pipeline.connect("presave", always_one)
        pipeline.connect("presave", on_a, field="a")
        pipeline.connect("presave", always_two)

        assert pipeline.receivers("presave", ["a", "b"]) == [always_one, always_two, on_a, on_b]
        assert pipeline.receivers("presave", ["b"]) == [always_one, always_two, on_b]
        assert pipeline.receivers("presave") == [always_one, always_two]

    def test_connect_as_decorator(self):
        pipeline = HookPipeline("Thing")

        @pipeline.connect("postsave")
        def audit(doc):
            pass

        assert pipeline.receivers("postsave") == [audit]
        assert pipeline.has_hooks("postsave")
        assert not pipeline.has_hooks("presave")

    def test_connect_twice_is_noop(self):
        pipeline = HookPipeline("Thing")

        def fn(doc):
            pass

        pipeline.connect("presave", fn)
        pipeline.connect("presave", fn)
        assert pipeline.receivers("presave") == [fn]

    def test_connect_non_callable(self):
        with pytest.raises(TypeError):
            HookPipeline("Thing").connect("presave", "nope")

    def test_disconnect(self):
        pipeline = HookPipeline("Thing")

        def fn(doc):
            pass

        pipeline.connect("presave", fn, field="name")
        assert pipeline.disconnect("presave", fn) is True
        assert pipeline.disconnect("presave", fn) is False
        assert not pipeline.has_hooks("presave")

    def test_connected_context_manager(self):
        pipeline = HookPipeline("Thing")

        def fn(doc):
            pass

        with pipeline.connected("predelete", fn):
            assert pipeline.receivers("predelete") == [fn]
        assert pipeline.receivers("predelete") == []

    def test_copy_is_independent(self):
        pipeline = HookPipeline("Parent")

        def fn(doc):
            pass

        pipeline.connect("presave", fn)
        clone = pipeline.copy("Child")
        clone.disconnect("presave", fn)
        assert pipeline.receivers("presave") == [fn]
        assert clone.receivers("presave") == []
        assert clone.model_name == "Child"

    def test_clear(self):
        pipeline = HookPipeline("Thing")
        pipeline.connect("presave", lambda doc: None)
        pipeline.clear()
        assert not pipeline.has_hooks("presave")

    @pytest.mark.asyncio
    async def test_three_completion_styles(self):
        pipeline = HookPipeline("Thing")
        calls = []

        def sync_hook(doc):
            calls.append("sync")

        async def async_hook(doc):
            await asyncio.sleep(0)
            calls.append("async")

        def callback_hook(doc, done):
            asyncio.get_running_loop().call_soon(done)
            calls.append("callback")

        def after(doc):
            calls.append("after")

        for fn in (sync_hook, async_hook, callback_hook, after):
            pipeline.connect("presave", fn)

        await pipeline.run("presave", object())
        assert calls == ["sync", "async", "callback", "after"]

    @pytest.mark.asyncio
    async def test_callback_waits_for_done(self):
        pipeline = HookPipeline("Thing")
        calls = []

        def slow(doc, done):
            def finish():
                calls.append("slow finished")
                done()
            asyncio.get_running_loop().call_later(0.01, finish)

        def next_hook(doc):
            calls.append("next")

        pipeline.connect("presave", slow)
        pipeline.connect("presave", next_hook)
        await pipeline.run("presave", object())
        assert calls == ["slow finished", "next"]

    @pytest.mark.asyncio
    async def test_callback_error(self):
        pipeline = HookPipeline("Thing")

        def reject(doc, done):
            done(ValueError("rejected"))

        pipeline.connect("presave", reject)
        with pytest.raises(ValueError, match="rejected"):
            await pipeline.run("presave", object())

    @pytest.mark.asyncio
    async def test_callback_error_message(self):
        pipeline = HookPipeline("Thing")
        pipeline.connect("presave", lambda doc, done: done("bad input"))
        with pytest.raises(RuntimeError, match="bad input"):
            await pipeline.run("presave", object())

    @pytest.mark.asyncio
    async def test_failure_short_circuits(self):
        pipeline = HookPipeline("Thing")
        calls = []

        def boom(doc):
            raise KeyError("boom")

        def never(doc):
            calls.append("never")

        pipeline.connect("postvalidate", boom)
        pipeline.connect("postvalidate", never)
        with pytest.raises(KeyError):
            await pipeline.run("postvalidate", object())
        assert calls == []

    @pytest.mark.asyncio
    async def test_field_scoped_hooks_follow_field_order(self):
        pipeline = HookPipeline("Thing")
        calls = []
        pipeline.connect("prevalidate", lambda doc: calls.append("name"), field="name")
        pipeline.connect("prevalidate", lambda doc: calls.append("age"), field="age")
        pipeline.connect("prevalidate", lambda doc: calls.append("always"))

        await pipeline.run("prevalidate", object(), ["age"])
        assert calls == ["always", "age"]

    @pytest.mark.asyncio
    async def test_always_key_is_ignored_as_field(self):
        pipeline = HookPipeline("Thing")
        calls = []
        pipeline.connect("presave", lambda doc: calls.append("x"))
        await pipeline.run("presave", object(), [ALWAYS])
        assert calls == ["x"]

    @pytest.mark.asyncio
    async def test_defaulted_second_parameter_is_not_a_callback(self):
        pipeline = HookPipeline("Thing")
        calls = []

        def stamp(doc, source="user"):
            calls.append(source)

        pipeline.connect("presave", stamp)
        await asyncio.wait_for(pipeline.run("presave", object()), timeout=1)
        assert calls == ["user"]


# ============================================================================
# Hooks on documents
# ============================================================================


class HookedUser(Document):
    name = String
    email = String
    visits = Number.default(0)

    @hook("prevalidate", "email")
    def normalize_email(self):
        self.email = self.email.strip().lower()

    @hook("presave")
    def count_visit(self):
        self.visits = (self.visits or 0) + 1


class TestDocumentHooks:

    def test_decorated_methods_connected(self):
        assert HookedUser.hooks.receivers("prevalidate", ["email"]) == [HookedUser.normalize_email]
        assert HookedUser.hooks.receivers("prevalidate", ["name"]) == []
        assert HookedUser.hooks.receivers("presave") == [HookedUser.count_visit]

    @pytest.mark.asyncio
    async def test_hooks_run_on_save(self, memory_db):
        user = await HookedUser.create(name="Ann", email="  ANN@Example.com ")
        await user.save()
        assert user.email == "ann@example.com"
        assert user.visits == 1
        stored = await memory_db.find_one("hookeduser", {"_id": user._id})
        assert stored["email"] == "ann@example.com"
        assert stored["visits"] == 1

    @pytest.mark.asyncio
    async def test_field_hook_skipped_when_field_clean(self, memory_db):
        user = await (await HookedUser.create(name="Ann", email="ann@example.com")).save()
        calls = []
        with HookedUser.hooks.connected("prevalidate", lambda doc: calls.append("email"), field="email"):
            user.name = "Anne"
            await user.save()
        assert calls == []
        assert user.visits == 2

    @pytest.mark.asyncio
    async def test_presave_changes_are_written(self, memory_db):
        user = await (await HookedUser.create(name="Ann", email="a@b.co")).save()
        user.name = "Anne"
        await user.save()
        stored = await memory_db.find_one("hookeduser", {"_id": user._id})
        assert stored["name"] == "Anne"
        assert stored["visits"] == 2

    def test_subclass_inherits_hooks(self):
        class HookedAdmin(HookedUser):
            level = Number

        assert HookedAdmin.hooks.receivers("presave") == [HookedUser.count_visit]
        assert HookedAdmin.hooks is not HookedUser.hooks

    def test_override_replaces_inherited_hook(self):
        class HookedGuest(HookedUser):
            def count_visit(self):
                pass

        assert HookedGuest.hooks.receivers("presave") == []
        assert HookedUser.hooks.receivers("presave") == [HookedUser.count_visit]

    def test_meta_hooks(self):
        def audit(doc):
            pass

        def check_name(doc):
            pass

        class HookedMeta(Document):
            name = String

            class Meta:
                hooks = {"postsave": audit, "pre_validate": {"name": [check_name]}}

        assert HookedMeta.hooks.receivers("postsave") == [audit]
        assert HookedMeta.hooks.receivers("prevalidate", ["name"]) == [check_name]

    @pytest.mark.asyncio
    async def test_oncreate_runs_on_create_only(self):
        calls = []

        class HookedCreate(Document):
            name = String

            @hook("oncreate")
            def created(self):
                calls.append(self.name)

        HookedCreate(name="direct")
        await HookedCreate.create(name="factory")
        assert calls == ["factory"]

    @pytest.mark.asyncio
    async def test_event_order(self, memory_db):
        calls = []

        class HookedOrder(Document):
            name = String

            class Meta:
                hooks = {
                    event.value: (lambda e: lambda doc: calls.append(e))(event.value)
                    for event in HookEvent
                }

        doc = await HookedOrder.create(name="x")
        await doc.save()
        await doc.delete()
        assert calls == [
            "oncreate",
            "prevalidate",
            "postvalidate",
            "presave",
            "postsave",
            "predelete",
            "postdelete",
        ]

    @pytest.mark.asyncio
    async def test_async_hook_on_document(self, memory_db):
        class HookedAsync(Document):
            name = String
            slug = String.optional()

            @hook("presave")
            async def make_slug(self):
                await asyncio.sleep(0)
                self.slug = self.name.lower().replace(" ", "-")

        doc = await (await HookedAsync.create(name="Hello World")).save()
        stored = await memory_db.find_one("hookedasync", {"_id": doc._id})
        assert stored["slug"] == "hello-world"

    @pytest.mark.asyncio
    async def test_failing_hook_aborts_save(self, memory_db):
        class HookedFail(Document):
            name = String

            @hook("presave")
            def refuse(self, done):
                done(PermissionError("read-only"))

        doc = await HookedFail.create(name="x")
        with pytest.raises(PermissionError):
            await doc.save()
        assert await HookedFail.count() == 0
        assert doc._id is None

    @pytest.mark.asyncio
    async def test_hook_with_keyword_default_completes_save(self, memory_db):
        class HookedStamp(Document):
            name = String
            source = String.optional()

        def stamp(doc, source="user"):
            doc.source = source

        HookedStamp.hooks.connect("presave", stamp)
        doc = await asyncio.wait_for((await HookedStamp.create(name="x")).save(), timeout=2)
        stored = await memory_db.find_one("hookedstamp", {"_id": doc._id})
        assert stored["source"] == "user"
