"""Tests for entity name resolution."""

import asyncio

from marquee.client.lookup import DEFAULT_OVERRIDES, EntityLookupService, OverrideTable
from marquee.core.errors import ExternalAPIError
from marquee.core.models import MediaType, parse_entities


def _resolve(service, entities, media=MediaType.MOVIE):
    return asyncio.run(service.resolve_all(parse_entities(entities), media))


class TestOverrideTable:
    """Tests for OverrideTable."""

    def test_normalized_keys(self):
        assert DEFAULT_OVERRIDES.get("genre", "Sci-Fi") == "878"
        assert DEFAULT_OVERRIDES.get("network", "  HBO ") == "49"

    def test_merged_layers_and_versions(self):
        local = OverrideTable.from_dict({"version": "local-1", "entries": {"person": {"Tom Hanks": 31}}})
        merged = DEFAULT_OVERRIDES.merged(local)
        assert merged.get("person", "tom hanks") == "31"
        assert merged.get("genre", "horror") == "27"
        assert merged.version == f"{DEFAULT_OVERRIDES.version}+local-1"
        assert DEFAULT_OVERRIDES.get("person", "tom hanks") is None

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "overrides.yaml"
        path.write_text("version: '7'\nentries:\n  company:\n    A24: 41077\n")
        table = OverrideTable.from_yaml(path)
        assert table.version == "7"
        assert table.get("company", "a24") == "41077"


class TestEntityLookupService:
    """Tests for EntityLookupService."""

    def test_genre_from_overrides_without_api(self):
        service = EntityLookupService()
        [genre] = _resolve(service, [{"type": "genre", "value": "Horror"}])
        assert genre.resolved_id == "27"

    def test_tv_genre_ids(self):
        service = EntityLookupService()
        [genre] = _resolve(service, [{"type": "genre", "value": "sci-fi"}], MediaType.TV)
        assert genre.resolved_id == "10765"

    def test_two_letter_language_code(self):
        [language] = _resolve(EntityLookupService(), [{"type": "language", "value": "KO"}])
        assert language.resolved_id == "ko"

    def test_person_search_prefers_role_department(self, make_api):
        api = make_api(
            {
                "/search/person": {
                    "results": [
                        {"id": 1, "known_for_department": "Acting"},
                        {"id": 2, "known_for_department": "Directing"},
                    ]
                }
            }
        )
        service = EntityLookupService(api)
        director, actor = _resolve(
            service,
            [
                {"type": "person", "value": "Sam Smith", "role": "director"},
                {"type": "person", "value": "Sam Smith"},
            ],
        )
        assert director.resolved_id == "2"
        assert actor.resolved_id == "1"

    def test_duplicates_looked_up_once(self, make_api):
        api = make_api({"/search/keyword": {"results": [{"id": 9715}]}})
        service = EntityLookupService(api)
        entities = [{"type": "keyword", "value": "superhero"}, {"type": "keyword", "value": "Superhero"}]

        first, second = _resolve(service, entities)
        _resolve(service, entities)

        assert first.resolved_id == second.resolved_id == "9715"
        assert len(api.calls) == 1

    def test_input_order_preserved_and_not_mutated(self, make_api):
        api = make_api({"/search/company": {"results": [{"id": 420}]}})
        entities = parse_entities(
            [
                {"type": "company", "value": "Marvel Studios"},
                {"type": "date", "value": "2019"},
                {"type": "genre", "value": "action"},
            ]
        )
        resolved = asyncio.run(EntityLookupService(api).resolve_all(entities))
        assert [e.kind for e in resolved] == ["company", "date", "genre"]
        assert resolved[0].resolved_id == "420"
        assert entities[0].resolved_id is None

    def test_failed_search_leaves_unresolved(self, make_api):
        api = make_api(errors={"/search/person": ExternalAPIError("HTTP 500", status_code=500)})
        [person] = _resolve(EntityLookupService(api), [{"type": "person", "value": "Someone"}])
        assert person.resolved_id is None

    def test_caches_are_per_instance(self, make_api):
        api = make_api({"/search/keyword": {"results": [{"id": 1}]}})
        _resolve(EntityLookupService(api), [{"type": "keyword", "value": "heist"}])
        _resolve(EntityLookupService(api), [{"type": "keyword", "value": "heist"}])
        assert len(api.calls) == 2

    def test_bounded_concurrency(self):
        in_flight = 0
        peak = 0

        class SlowAPI:
            async def get(self, path, params=None):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1
                return {"results": [{"id": len(params["query"])}]}

        service = EntityLookupService(SlowAPI(), max_concurrency=2)
        entities = [{"type": "keyword", "value": "k" * n} for n in range(1, 7)]
        resolved = _resolve(service, entities)

        assert peak <= 2
        assert [e.resolved_id for e in resolved] == [str(n) for n in range(1, 7)]

    def test_override_file(self, make_api, tmp_path):
        path = tmp_path / "overrides.yaml"
        path.write_text("version: test\nentries:\n  person:\n    tom hanks: '31'\n")
        api = make_api()
        service = EntityLookupService.with_override_file(api, path)
        [person] = _resolve(service, [{"type": "person", "value": "Tom Hanks"}])
        assert person.resolved_id == "31"
        assert api.calls == []
