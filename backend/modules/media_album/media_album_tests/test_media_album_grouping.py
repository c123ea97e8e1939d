"""
分组配置测试
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core.events import event_bus, Events
from modules.media_album.media_album_grouping import (
    GroupingFieldsService, AlbumGroupingConfigService, GroupingFieldsWidget
)


class TestGroupingFields:
    """可用分组字段"""

    @pytest.mark.asyncio
    async def test_node_fields(self, db: AsyncSession, field_configs):
        fields = await GroupingFieldsService(db).get_node_fields()
        # 基础字段只保留 title，媒体/分组字段被排除
        assert set(fields.keys()) == {"title", "field_location"}
        assert fields["field_location"]["label"] == "拍摄地点"

    @pytest.mark.asyncio
    async def test_media_fields_follow_target_bundles(self, db: AsyncSession, field_configs):
        fields = await GroupingFieldsService(db).get_media_fields()
        assert set(fields.keys()) == {"directory", "field_photographer"}

    @pytest.mark.asyncio
    async def test_media_bundles_fallback(self, db: AsyncSession):
        service = GroupingFieldsService(db)
        assert await service.get_media_bundles() == ["media_album_av_photo", "media_album_av_video"]

    @pytest.mark.asyncio
    async def test_options(self, db: AsyncSession, field_configs):
        service = GroupingFieldsService(db)

        grouped = await service.get_field_options()
        assert grouped["相册字段"]["title"] == "标题"
        assert grouped["媒体字段"]["directory"] == "目录"

        prefixed = await service.get_prefixed_field_options()
        assert prefixed["node:field_location"] == "拍摄地点 (相册)"
        assert prefixed["media:directory"] == "目录 (媒体)"

    @pytest.mark.asyncio
    async def test_validation_helpers(self, db: AsyncSession, field_configs):
        service = GroupingFieldsService(db)
        assert await service.is_valid_field("media:directory") is True
        assert await service.is_valid_field("node:title") is True
        assert await service.is_valid_field("media:field_duration") is False
        assert await service.is_valid_field("") is False
        assert service.get_field_source("media:directory") == "media"
        assert service.get_field_source("field_location") == "node"
        assert service.get_max_grouping_levels() == 5
        assert service.get_default_grouping() == []


class TestAlbumGroupingConfig:
    """相册分组设置"""

    def test_parse_field_name(self):
        assert AlbumGroupingConfigService.parse_field_name("media:directory") == ("media", "directory")
        assert AlbumGroupingConfigService.parse_field_name("node:title") == ("node", "title")
        assert AlbumGroupingConfigService.parse_field_name("title") == ("node", "title")
        assert AlbumGroupingConfigService.parse_field_name("other:x") == ("node", "other:x")

    @pytest.mark.asyncio
    async def test_album_fields_and_summary(self, db: AsyncSession, field_configs, make_album):
        album = await make_album("夏天", grouping=["media:directory", "node:field_location"])
        service = AlbumGroupingConfigService(db)

        assert service.has_grouping_fields(album) is True
        assert service.get_album_grouping_fields(album) == ["media:directory", "node:field_location"]
        assert await service.get_grouping_hierarchy_summary(album) == [
            "第 1 级: 目录 (媒体)",
            "第 2 级: 拍摄地点",
        ]

    @pytest.mark.asyncio
    async def test_other_bundle_has_no_grouping(self, db: AsyncSession, make_album):
        album = await make_album("文章", grouping=["media:directory"], bundle="article")
        service = AlbumGroupingConfigService(db)
        assert service.get_album_grouping_fields(album) == []
        assert service.has_grouping_fields(album) is False

    @pytest.mark.asyncio
    async def test_save_album_grouping(self, db: AsyncSession, field_configs, make_album):
        album = await make_album("夏天")
        service = AlbumGroupingConfigService(db)

        fields = await service.save_album_grouping(album, {"table": {
            "0": {"field": "node:title", "weight": 1},
            "1": {"field": "media:directory", "weight": 0},
        }})
        assert fields == ["media:directory", "node:title"]

        with pytest.raises(ValueError):
            await service.save_album_grouping(album, [{"field": "media:unknown", "weight": 0}])
        too_many = [{"field": "node:title", "weight": i} for i in range(6)]
        with pytest.raises(ValueError):
            await service.save_album_grouping(album, too_many)
        assert service.get_album_grouping_fields(album) == ["media:directory", "node:title"]

    @pytest.mark.asyncio
    async def test_save_grouping_rejects_other_bundle(self, db: AsyncSession, field_configs, make_album):
        album = await make_album("文章", bundle="article")
        with pytest.raises(ValueError):
            await AlbumGroupingConfigService(db).save_album_grouping(album, [{"field": "node:title"}])

    @pytest.mark.asyncio
    async def test_build_album_form_without_field_options(self, db: AsyncSession, make_album):
        album = await make_album("空配置")
        form = await AlbumGroupingConfigService(db).build_album_form(album)
        assert form["fields"] == []
        # 没有字段配置时分组表格降级为提示
        assert form["grouping"]["level"] == "warning"


class TestApplyGrouping:
    """分组应用"""

    @pytest.mark.asyncio
    async def test_nested_groups(self, db: AsyncSession, field_configs, make_term, make_media, make_album):
        beach = await make_term("海边")
        city = await make_term("城市")
        m1 = await make_media("1", directory=beach.id, fields={"field_photographer": [{"value": "张三"}]})
        m2 = await make_media("2", directory=city.id, fields={"field_photographer": [{"value": "李四"}]})
        m3 = await make_media("3", directory=beach.id, fields={"field_photographer": [{"value": "李四"}]})
        m4 = await make_media("4")
        album = await make_album("夏天", media_ids=[m1.id, m2.id, m3.id, m4.id])
        service = AlbumGroupingConfigService(db)

        groups = await service.apply_grouping(album, ["media:directory", "media:field_photographer"])

        assert [g["title"] for g in groups] == ["海边", "城市", "未设置"]
        assert groups[0]["medias"] == [m1.id, m3.id]
        assert groups[0]["level"] == 1
        assert groups[0]["groupid"] == f"1-{beach.id}"
        sub = groups[0]["subgroups"]
        assert [s["title"] for s in sub] == ["张三", "李四"]
        assert sub[1]["medias"] == [m3.id]
        assert sub[1]["level"] == 2
        assert sub[1]["groupid"] == f"1-{beach.id}_2-李四"
        assert groups[2]["medias"] == [m4.id]

        history = event_bus.get_history(Events.GROUPING_APPLIED)
        assert history[-1].data["album_id"] == album.id

    @pytest.mark.asyncio
    async def test_group_by_album_field(self, db: AsyncSession, field_configs, make_media, make_album):
        m1 = await make_media("1")
        m2 = await make_media("2")
        album = await make_album("夏天", media_ids=[m1.id, m2.id], fields={"field_location": [{"value": "青岛"}]})
        service = AlbumGroupingConfigService(db)

        groups = await service.apply_grouping(album, ["node:field_location"])
        assert len(groups) == 1
        assert groups[0]["title"] == "青岛"
        assert groups[0]["medias"] == [m1.id, m2.id]
        assert groups[0]["subgroups"] == []

    @pytest.mark.asyncio
    async def test_empty_album(self, db: AsyncSession, field_configs, make_album):
        album = await make_album("空相册")
        service = AlbumGroupingConfigService(db)
        assert await service.apply_grouping(album, ["media:directory"]) == []


class TestGroupingFieldsWidget:
    """分组字段表单控件"""

    def test_rows_plus_empty_row(self):
        widget = GroupingFieldsWidget()
        options = {"media:directory": "目录 (媒体)", "node:title": "标题 (相册)"}

        element = widget.form_element([{"value": "media:directory"}], options)

        assert element["type"] == "table"
        assert len(element["rows"]) == 2
        first, empty = element["rows"]
        assert first["field"]["default_value"] == "media:directory"
        assert first["field"]["options"][""] == "- 无 -"
        assert first["weight"]["default_value"] == 0
        assert empty["field"]["default_value"] == ""
        assert empty["level"]["markup"] == "第 2 级"

    def test_warning_without_options(self):
        element = GroupingFieldsWidget().form_element([], {})
        assert element["type"] == "markup"
        assert element["level"] == "warning"

    def test_massage_sorts_and_drops_empty(self):
        values = [
            {"field": "node:title", "weight": "2"},
            {"field": "", "weight": "0"},
            {"field": "media:directory", "weight": "1"},
            {"field": "media:field_photographer", "weight": "abc"},
        ]
        assert GroupingFieldsWidget.massage_form_values(values) == [
            {"value": "media:field_photographer"},
            {"value": "media:directory"},
            {"value": "node:title"},
        ]

    def test_massage_accepts_table_dict(self):
        values = {"table": {"0": {"field": "b", "weight": 1}, "1": {"field": "a", "weight": 0}}}
        assert GroupingFieldsWidget.massage_form_values(values) == [{"value": "a"}, {"value": "b"}]
