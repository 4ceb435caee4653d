from badge_admin.constants.permissions import ACTIONS, AREA_CATALOG, ROLE_PRESETS
from badge_admin.openapi import OPERATIONS
from badge_admin.utils.naming import canonical_area_key


def _catalog_keys():
    keys = {canonical_area_key(m) for m in AREA_CATALOG}
    keys |= {canonical_area_key(s) for subs in AREA_CATALOG.values() for s in subs}
    return keys


def test_documented_capabilities_exist_in_some_role():
    documented = {(canonical_area_key(a), act) for *_, caps, _ in OPERATIONS for a, act in caps or []}
    granted = {
        (canonical_area_key(area), act)
        for grants in ROLE_PRESETS.values() for area, actions in grants.items() for act in actions
    }
    missing = sorted(documented - granted)
    assert not missing, f"Capabilities not present in any preset role: {missing}"


def test_presets_only_reference_catalog_areas_and_known_actions():
    keys = _catalog_keys()
    for role, grants in ROLE_PRESETS.items():
        for area, actions in grants.items():
            assert canonical_area_key(area) in keys, (role, area)
            assert set(actions) <= set(ACTIONS), (role, area)


def test_catalog_titles_are_canonically_unique_per_level():
    menus = [canonical_area_key(m) for m in AREA_CATALOG]
    assert len(menus) == len(set(menus))
    for subs in AREA_CATALOG.values():
        keys = [canonical_area_key(s) for s in subs]
        assert len(keys) == len(set(keys))
