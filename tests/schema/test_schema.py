"""Tests for schema validation."""

import pytest

from directdrop import schema as s
from directdrop.schema import Kind, ValidationContext


def png(name="photo.png", size=1024, mime_type="image/png"):
    return {"name": name, "size": size, "type": mime_type}


class TestFileSchema:
    """Tests for single-file schemas."""

    @pytest.mark.asyncio
    async def test_exactly_max_size_passes(self):
        """Test that a file exactly at the limit passes."""
        schema = s.file(max_size="1MB")
        result = await schema.validate(png(size=1024 * 1024))
        assert result.success

    @pytest.mark.asyncio
    async def test_one_byte_over_fails(self):
        """Test that one byte over the limit fails with FILE_TOO_LARGE."""
        schema = s.file(max_size="1MB")
        result = await schema.validate(png(size=1024 * 1024 + 1))
        assert not result.success
        assert result.error.code == "FILE_TOO_LARGE"
        assert result.error.path == ()

    @pytest.mark.asyncio
    async def test_min_size(self):
        result = await s.file().min_size("1KB").validate(png(size=10))
        assert result.error.code == "FILE_TOO_SMALL"

    @pytest.mark.asyncio
    async def test_size_checked_before_type(self):
        """Test that size failures are reported before type failures."""
        schema = s.file(max_size=10, types=["image/png"])
        result = await schema.validate(png(size=100, mime_type="application/pdf"))
        assert result.error.code == "FILE_TOO_LARGE"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mime_type,allowed",
        [("image/png", True), ("image/jpeg", True), ("application/pdf", False)],
    )
    async def test_wildcard_types(self, mime_type, allowed):
        """Test that image/* matches every image subtype only."""
        schema = s.file(types=["image/*"])
        result = await schema.validate(png(mime_type=mime_type))
        assert result.success is allowed
        if not allowed:
            assert result.error.code == "INVALID_FILE_TYPE"

    @pytest.mark.asyncio
    async def test_extensions_case_insensitive(self):
        schema = s.file().extensions([".png", "jpg"])
        assert (await schema.validate(png(name="HOLIDAY.PNG"))).success
        assert (await schema.validate(png(name="a.JPG"))).success
        result = await schema.validate(png(name="notes.txt"))
        assert result.error.code == "INVALID_FILE_EXTENSION"

    @pytest.mark.asyncio
    async def test_non_file_value(self):
        result = await s.file().validate("not a file")
        assert result.error.code == "INVALID_TYPE"

    @pytest.mark.asyncio
    async def test_optional_accepts_none(self):
        assert (await s.file().optional().validate(None)).success
        assert not (await s.file().validate(None)).success

    def test_invalid_size_string_rejected_at_build(self):
        with pytest.raises(ValueError):
            s.file(max_size="lots")
        with pytest.raises(ValueError):
            s.file().max_size("10 parsecs")

    def test_chain_returns_new_schema(self):
        """Test that schemas are immutable values."""
        base = s.file()
        limited = base.max_size("1MB")
        assert base.constraints.max_size is None
        assert limited.constraints.max_size == "1MB"
        assert base is not limited


class TestImageSchema:
    """Tests for image schemas."""

    @pytest.mark.asyncio
    async def test_defaults_to_any_image(self):
        schema = s.image()
        assert schema.kind is Kind.IMAGE
        assert (await schema.validate(png(mime_type="image/webp"))).success
        assert not (await schema.validate(png(mime_type="text/plain"))).success

    @pytest.mark.asyncio
    async def test_formats(self):
        """Test that short format names map to MIME types."""
        schema = s.image().formats(["jpg", "png", "svg"])
        assert schema.constraints.allowed_types == ("image/jpeg", "image/png", "image/svg+xml")
        result = await schema.validate(png(mime_type="image/gif"))
        assert result.error.code == "INVALID_FILE_TYPE"

    def test_formats_only_on_images(self):
        with pytest.raises(TypeError):
            s.file().formats(["png"])


class TestArraySchema:
    """Tests for array schemas."""

    @pytest.mark.asyncio
    async def test_max_bound(self):
        """Test that an array bounded to 3 rejects 4 and accepts 3."""
        schema = s.image().max_files(3)
        too_many = await schema.validate([png(f"{i}.png") for i in range(4)])
        assert not too_many.success
        assert too_many.error.code == "ARRAY_TOO_LONG"

        ok = await schema.validate([png(f"{i}.png") for i in range(3)])
        assert ok.success
        assert len(ok.data) == 3

    @pytest.mark.asyncio
    async def test_min_and_exact_length(self):
        short = await s.file().array(min=2).validate([png()])
        assert short.error.code == "ARRAY_TOO_SHORT"

        wrong = await s.file().array(length=2).validate([png(), png(), png()])
        assert wrong.error.code == "ARRAY_WRONG_LENGTH"

    @pytest.mark.asyncio
    async def test_element_failure_is_indexed(self):
        schema = s.file(max_size=100).array(max=5)
        result = await schema.validate([png(size=10), png(size=1000)])
        assert result.error.code == "FILE_TOO_LARGE"
        assert result.error.path == ("[1]",)

    @pytest.mark.asyncio
    async def test_not_a_list(self):
        result = await s.file().array().validate(png())
        assert result.error.code == "INVALID_TYPE"

    @pytest.mark.asyncio
    async def test_min_max_chain(self):
        schema = s.file().array().min(1).max(2)
        assert (await schema.validate([])).error.code == "ARRAY_TOO_SHORT"
        assert (await schema.validate([png(), png()])).success
        assert (await schema.validate([png()] * 3)).error.code == "ARRAY_TOO_LONG"

    def test_length_only_on_arrays(self):
        with pytest.raises(TypeError):
            s.file().length(2)

    def test_per_file(self):
        element = s.image(max_size="1MB")
        assert element.max_files(4).per_file() == element


class TestObjectSchema:
    """Tests for object schemas."""

    @pytest.mark.asyncio
    async def test_field_failure_is_prefixed(self):
        schema = s.object({"avatar": s.image(max_size=100), "cv": s.file().optional()})
        result = await schema.validate({"avatar": png(size=1000)})
        assert result.error.code == "FILE_TOO_LARGE"
        assert result.error.path == ("avatar",)

    @pytest.mark.asyncio
    async def test_missing_optional_field(self):
        schema = s.object({"avatar": s.image(), "cv": s.file().optional()})
        result = await schema.validate({"avatar": png()})
        assert result.success
        assert set(result.data) == {"avatar"}

    @pytest.mark.asyncio
    async def test_nested_array_path(self):
        schema = s.object({"gallery": s.image(max_size=100).max_files(3)})
        result = await schema.validate({"gallery": [png(size=1), png(size=500)]})
        assert result.error.path == ("gallery", "[1]")

    @pytest.mark.asyncio
    async def test_cross_field_refinement(self):
        """Test that refinements see every sibling field."""
        schema = s.object({"front": s.image(), "back": s.image()}).refine(
            lambda ctx: ctx.all_files["front"]["name"] != ctx.all_files["back"]["name"],
            "Front and back must differ",
        )
        result = await schema.validate({"front": png("a.png"), "back": png("a.png")})
        assert result.error.code == "CUSTOM_VALIDATION"
        assert result.error.message == "Front and back must differ"

    def test_empty_shape(self):
        with pytest.raises(ValueError):
            s.object({})


class TestRefinementsAndTransforms:
    """Tests for custom refinements and transforms."""

    @pytest.mark.asyncio
    async def test_async_refinement(self):
        async def not_empty(ctx: ValidationContext) -> bool:
            return ctx.file["size"] > 0

        schema = s.file().refine(not_empty, "File is empty")
        result = await schema.validate(png(size=0))
        assert result.error.code == "CUSTOM_VALIDATION"
        assert result.error.message == "File is empty"

    @pytest.mark.asyncio
    async def test_first_failing_refinement_wins(self):
        schema = (
            s.file()
            .refine(lambda ctx: False, "first")
            .refine(lambda ctx: False, "second")
        )
        result = await schema.validate(png())
        assert result.error.message == "first"

    @pytest.mark.asyncio
    async def test_raising_refinement_becomes_validation_error(self):
        def explode(ctx):
            raise RuntimeError("boom")

        result = await s.file().refine(explode, "never").validate(png())
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.message == "boom"

    @pytest.mark.asyncio
    async def test_transforms_chain(self):
        schema = (
            s.file()
            .transform(lambda ctx: ctx.original_data["name"])
            .transform(lambda ctx: ctx.original_data.upper())
        )
        result = await schema.validate(png("a.png"))
        assert result.data == "A.PNG"
