import pytest

from creatorai.core.errors import BrandProfileLimitError, NotFoundError
from creatorai.features.brand.service import (
    count_brand_profiles,
    create_brand_profile,
    delete_brand_profile,
    ensure_can_create,
    list_brand_profiles,
    profile_fields_from_kit,
    set_active_brand_profile,
)
from creatorai.models.plan import Plan


def test_free_plan_cannot_create(make_user):
    make_user("user_1")
    with pytest.raises(BrandProfileLimitError) as exc_info:
        create_brand_profile("user_1", Plan.FREE, "Acme")
    assert exc_info.value.details == {"limit": 0}
    assert exc_info.value.status_code == 403


def test_creator_limit_is_one(make_user):
    make_user("user_1", plan=Plan.CREATOR)
    profile = create_brand_profile("user_1", Plan.CREATOR, "Acme", keywords=["tech"], color_palette=["#000000"])

    assert profile.brand_name == "Acme"
    assert profile.keywords == ["tech"]
    assert profile.is_active is False

    with pytest.raises(BrandProfileLimitError):
        create_brand_profile("user_1", Plan.CREATOR, "Second")
    with pytest.raises(BrandProfileLimitError):
        ensure_can_create("user_1", Plan.CREATOR)
    assert count_brand_profiles("user_1") == 1


def test_pro_allows_ten(make_user):
    make_user("user_1", plan=Plan.PRO)
    for i in range(10):
        create_brand_profile("user_1", Plan.PRO, f"Brand {i}")
    with pytest.raises(BrandProfileLimitError):
        create_brand_profile("user_1", Plan.PRO, "Eleventh")


def test_activate_switches_single_active(make_user):
    make_user("user_1", plan=Plan.PRO)
    first = create_brand_profile("user_1", Plan.PRO, "One")
    second = create_brand_profile("user_1", Plan.PRO, "Two")

    set_active_brand_profile("user_1", first.id)
    set_active_brand_profile("user_1", second.id)

    active = [p.brand_name for p in list_brand_profiles("user_1") if p.is_active]
    assert active == ["Two"]


def test_other_users_profile_not_found(make_user):
    make_user("user_1", plan=Plan.PRO)
    make_user("user_2", plan=Plan.PRO)
    profile = create_brand_profile("user_1", Plan.PRO, "Mine")

    with pytest.raises(NotFoundError):
        set_active_brand_profile("user_2", profile.id)
    with pytest.raises(NotFoundError):
        delete_brand_profile("user_2", profile.id)


def test_delete_frees_a_slot(make_user):
    make_user("user_1", plan=Plan.CREATOR)
    profile = create_brand_profile("user_1", Plan.CREATOR, "Acme")
    delete_brand_profile("user_1", profile.id)
    create_brand_profile("user_1", Plan.CREATOR, "Acme 2")
    assert [p.brand_name for p in list_brand_profiles("user_1")] == ["Acme 2"]


def test_profile_fields_from_kit():
    fields = profile_fields_from_kit({"brandVoice": "bold", "colorPalette": ["#fff"], "taglines": ["x"]})
    assert fields["brand_voice"] == "bold"
    assert fields["color_palette"] == ["#fff"]
    assert "taglines" not in fields


def test_profile_fields_from_kit_coerces_model_output():
    fields = profile_fields_from_kit(
        {
            "brandVoice": ["not", "text"],
            "colorPalette": [{"hex": "#000", "name": "black"}, "#fff", 3],
            "keywords": "tech, reviews",
            "toneSettings": "friendly and upbeat",
        }
    )
    assert fields["brand_voice"] is None
    assert fields["color_palette"] == ["#000", "#fff"]
    assert fields["keywords"] is None
    assert fields["tone_settings"] == {"description": "friendly and upbeat"}


def test_profile_from_odd_kit_round_trips(make_user):
    make_user("user_1", plan=Plan.PRO)
    fields = profile_fields_from_kit({"toneSettings": "calm", "colorPalette": [{"hex": "#123456"}]})
    profile = create_brand_profile("user_1", Plan.PRO, "Acme", **fields)
    assert profile.tone_settings == {"description": "calm"}
    assert profile.color_palette == ["#123456"]
