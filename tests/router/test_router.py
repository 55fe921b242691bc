"""Tests for the upload router."""

import io
from unittest.mock import Mock

import pytest
from tenacity import wait_none

from directdrop import schema as s
from directdrop.core.config import UploadConfig
from directdrop.core.exceptions import ConfigurationError, RouteNotFoundError
from directdrop.models.upload import CompletionEntry, FileDescriptor
from directdrop.router import Route, Router
from directdrop.storage.authorization import AuthorizationGenerator
from directdrop.storage.base import StorageBackend
from directdrop.storage.local import LocalStorageBackend


def descriptor(name="photo.png", size=1024, mime_type="image/png", field=None):
    return FileDescriptor(name=name, size=size, mime_type=mime_type, field=field)


@pytest.fixture
def make_router(upload_config, local_backend, generator):
    def _make(routes, config=None):
        if config is None:
            return Router(routes, upload_config, storage=local_backend, generator=generator)
        storage = LocalStorageBackend(config)
        return Router(
            routes,
            config,
            storage=storage,
            generator=AuthorizationGenerator(storage, config, retry_wait=wait_none()),
        )

    return _make


class TestRouterRegistry:
    """Tests for route registration."""

    def test_schema_must_be_wrapped(self, make_router):
        with pytest.raises(TypeError, match="Route"):
            make_router({"avatar": s.image()})

    def test_unknown_route(self, make_router):
        router = make_router({"avatar": Route(s.image())})
        assert router.route_names() == ["avatar"]
        with pytest.raises(RouteNotFoundError, match='Route "missing" not found'):
            router.get_route("missing")

    def test_route_builders_do_not_mutate(self):
        base = Route(s.image())
        with_hook = base.on_start(lambda ctx: None).middleware(lambda ctx: ctx.metadata)
        assert base.start_hook is None
        assert base.middleware_chain == ()
        assert len(with_hook.middleware_chain) == 1


class TestAuthorize:
    """Tests for Router.authorize."""

    @pytest.mark.asyncio
    async def test_partial_failure(self, make_router):
        """Test that one invalid file does not fail its siblings."""
        router = make_router({"photos": Route(s.image(max_size="1MB"))})
        files = [
            descriptor("a.png"),
            descriptor("b.png", size=5 * 1024 * 1024),
            descriptor("c.png"),
        ]

        results = await router.authorize("photos", None, files)

        assert [r.success for r in results] == [True, False, True]
        assert results[1].code == "FILE_TOO_LARGE"
        assert results[1].signed_url is None
        assert results[0].signed_url and results[2].signed_url
        assert results[0].object_key != results[2].object_key

    @pytest.mark.asyncio
    async def test_middleware_fold(self, make_router):
        """Test that each step sees exactly what the previous step returned."""
        seen = []

        def step(key, value):
            def _middleware(ctx):
                seen.append(dict(ctx.metadata))
                return {**ctx.metadata, key: value}

            return _middleware

        async def async_step(ctx):
            seen.append(dict(ctx.metadata))
            return {**ctx.metadata, "plan": "pro"}

        route = (
            Route(s.image())
            .middleware(step("user_id", "u1"))
            .middleware(step("org", "acme"))
            .middleware(async_step)
        )
        router = make_router({"avatar": route})

        results = await router.authorize("avatar", None, [descriptor()], {"client": "web"})

        assert seen == [
            {"client": "web"},
            {"client": "web", "user_id": "u1"},
            {"client": "web", "user_id": "u1", "org": "acme"},
        ]
        assert results[0].metadata == {
            "client": "web",
            "user_id": "u1",
            "org": "acme",
            "plan": "pro",
        }

    @pytest.mark.asyncio
    async def test_middleware_sees_request(self, make_router):
        requests = []
        route = Route(s.file()).middleware(lambda ctx: requests.append(ctx.request) or ctx.metadata)
        router = make_router({"docs": route})

        await router.authorize("docs", {"headers": {"x": "1"}}, [descriptor()])

        assert requests == [{"headers": {"x": "1"}}]

    @pytest.mark.asyncio
    async def test_middleware_rejection(self, make_router):
        """Test that a raising middleware fails only that file and calls on_error."""
        errors = []

        def deny_pdfs(ctx):
            if ctx.file.name.endswith(".pdf"):
                raise PermissionError("PDFs are not allowed here")
            return ctx.metadata

        route = Route(s.file()).middleware(deny_pdfs).on_error(errors.append)
        router = make_router({"docs": route})

        results = await router.authorize(
            "docs", None, [descriptor("a.pdf", mime_type="application/pdf"), descriptor()]
        )

        assert [r.success for r in results] == [False, True]
        assert results[0].code == "AUTHORIZATION_FAILED"
        assert results[0].error == "PDFs are not allowed here"
        assert len(errors) == 1
        assert errors[0].file.name == "a.pdf"

    @pytest.mark.asyncio
    async def test_start_hook_failure(self, make_router):
        def on_start(ctx):
            raise RuntimeError("quota exceeded")

        router = make_router({"avatar": Route(s.image()).on_start(on_start)})

        results = await router.authorize("avatar", None, [descriptor()])

        assert results[0].success is False
        assert results[0].code == "HOOK_FAILED"

    @pytest.mark.asyncio
    async def test_error_hook_failure_is_contained(self, make_router):
        def on_error(ctx):
            raise RuntimeError("hook broke")

        router = make_router({"avatar": Route(s.image(max_size=1)).on_error(on_error)})

        results = await router.authorize("avatar", None, [descriptor()])

        assert results[0].code == "FILE_TOO_LARGE"

    @pytest.mark.asyncio
    async def test_configuration_error_aborts(self, tmp_path, make_router):
        config = UploadConfig(local_storage_path=str(tmp_path))
        router = make_router({"avatar": Route(s.image())}, config=config)

        with pytest.raises(ConfigurationError):
            await router.authorize("avatar", None, [descriptor()])

    @pytest.mark.asyncio
    async def test_object_key_layout(self, make_router):
        route = (
            Route(s.image())
            .middleware(lambda ctx: {**ctx.metadata, "user_id": "u 1"})
            .paths(prefix="avatars")
        )
        router = make_router({"avatar": route})

        results = await router.authorize("avatar", None, [descriptor("my cat.png")])

        parts = results[0].object_key.split("/")
        assert parts[:3] == ["uploads", "avatars", "u_1"]
        assert parts[-1] == "my_cat.png"
        assert len(parts) == 6

    @pytest.mark.asyncio
    async def test_object_key_defaults_to_route_name(self, make_router):
        router = make_router({"invoices": Route(s.file())})

        results = await router.authorize("invoices", None, [descriptor("q1.pdf")])

        parts = results[0].object_key.split("/")
        assert parts[:3] == ["uploads", "invoices", "anonymous"]
        assert parts[-1] == "q1.pdf"

    @pytest.mark.asyncio
    async def test_custom_key_generator(self, make_router):
        route = Route(s.file()).paths(
            generate_key=lambda ctx: f"{ctx.global_prefix}/{ctx.route_name}/{ctx.file.name}"
        )
        router = make_router({"docs": route})

        results = await router.authorize("docs", None, [descriptor("a.txt")])

        assert results[0].object_key == "uploads/docs/a.txt"

    @pytest.mark.asyncio
    async def test_array_count_fails_whole_batch(self, make_router):
        router = make_router({"gallery": Route(s.image().max_files(3))})
        files = [descriptor(f"{i}.png") for i in range(4)]

        results = await router.authorize("gallery", None, files)

        assert all(not r.success for r in results)
        assert {r.code for r in results} == {"ARRAY_TOO_LONG"}

    @pytest.mark.asyncio
    async def test_array_elements_validated_individually(self, make_router):
        router = make_router({"gallery": Route(s.image(max_size=2048).max_files(3))})
        files = [descriptor("a.png"), descriptor("b.png", size=4096), descriptor("c.png")]

        results = await router.authorize("gallery", None, files)

        assert [r.success for r in results] == [True, False, True]

    @pytest.mark.asyncio
    async def test_object_route_fields(self, make_router):
        route = Route(s.object({"avatar": s.image(), "resume": s.file(types=["application/pdf"])}))
        router = make_router({"profile": route})
        files = [
            descriptor("me.png", field="avatar"),
            descriptor("cv.png", field="resume"),
            descriptor("x.png", field="banner"),
        ]

        results = await router.authorize("profile", None, files)

        assert results[0].success
        assert results[1].code == "INVALID_FILE_TYPE"
        assert results[2].code == "UNKNOWN_FIELD"

    @pytest.mark.asyncio
    async def test_independent_router_configs(self, tmp_path, make_router):
        """Test that two routers in one process keep their own configuration."""
        first = make_router(
            {"a": Route(s.file())},
            config=UploadConfig(
                local_storage_path=str(tmp_path / "one"),
                local_signing_secret="one",
                upload_prefix="first",
            ),
        )
        second = make_router(
            {"a": Route(s.file())},
            config=UploadConfig(
                local_storage_path=str(tmp_path / "two"),
                local_signing_secret="two",
                upload_prefix="second",
                public_base_url="https://files.example.com",
            ),
        )

        one = await first.authorize("a", None, [descriptor()])
        two = await second.authorize("a", None, [descriptor()])

        assert one[0].object_key.startswith("first/")
        assert two[0].object_key.startswith("second/")
        assert two[0].signed_url.startswith("https://files.example.com/storage/")


class TestComplete:
    """Tests for Router.complete."""

    @pytest.mark.asyncio
    async def test_complete_fires_hook(self, make_router):
        completed = []
        router = make_router({"avatar": Route(s.image()).on_complete(completed.append)})

        results = await router.complete(
            "avatar",
            None,
            [CompletionEntry(object_key="uploads/u/a.png", file=descriptor(), metadata={"k": 1})],
        )

        assert results[0].success
        assert results[0].url == "http://testserver/storage/uploads/u/a.png"
        assert completed[0].key == "uploads/u/a.png"
        assert completed[0].url == results[0].url
        assert completed[0].metadata == {"k": 1}

    @pytest.mark.asyncio
    async def test_verify_on_complete(self, tmp_path, make_router):
        config = UploadConfig(
            local_storage_path=str(tmp_path),
            local_signing_secret="s",
            verify_on_complete=True,
        )
        router = make_router({"avatar": Route(s.image())}, config=config)
        router.storage.store("uploads/present.png", io.BytesIO(b"x"))

        results = await router.complete(
            "avatar",
            None,
            [
                CompletionEntry(object_key="uploads/present.png", file=descriptor()),
                CompletionEntry(object_key="uploads/missing.png", file=descriptor()),
            ],
        )

        assert [r.success for r in results] == [True, False]
        assert results[1].code == "OBJECT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_configuration_error_calls_error_hook(self, upload_config, generator):
        """Test that on_error fires before a fatal storage error aborts completion."""
        errors = []
        storage = Mock(spec=StorageBackend)
        storage.exists.side_effect = ConfigurationError("Bucket not configured")
        config = upload_config.model_copy(update={"verify_on_complete": True})
        router = Router(
            {"avatar": Route(s.image()).on_error(errors.append)},
            config,
            storage=storage,
            generator=generator,
        )

        with pytest.raises(ConfigurationError):
            await router.complete(
                "avatar", None, [CompletionEntry(object_key="k/a.png", file=descriptor())]
            )

        assert errors[0].key == "k/a.png"
        assert isinstance(errors[0].error, ConfigurationError)

    @pytest.mark.asyncio
    async def test_complete_hook_failure(self, make_router):
        errors = []

        async def on_complete(ctx):
            raise RuntimeError("db down")

        route = Route(s.image()).on_complete(on_complete).on_error(errors.append)
        router = make_router({"avatar": route})

        results = await router.complete(
            "avatar", None, [CompletionEntry(object_key="k/a.png", file=descriptor())]
        )

        assert results[0].code == "HOOK_FAILED"
        assert errors[0].key == "k/a.png"
