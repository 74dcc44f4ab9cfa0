import pytest

from creatorai.core.errors import NotFoundError
from creatorai.features.content.service import delete_content, list_content, save_content
from creatorai.features.usage.service import list_usage, record_usage


def test_save_list_delete(make_user):
    make_user("user_1")
    first = save_content("user_1", "idea_generation", {"ideas": ["a"]}, title="Cooking")
    save_content("user_1", "image_generation", {"imageUrl": "data:..."})

    items = list_content("user_1")
    assert len(items) == 2
    assert [i.id for i in list_content("user_1", feature="idea_generation")] == [first]

    delete_content("user_1", first)
    assert [i.feature for i in list_content("user_1")] == ["image_generation"]


def test_delete_keeps_usage_log(make_user):
    make_user("user_1")
    record_usage("user_1", "video_ideas", "idea_generation", 1)
    content_id = save_content("user_1", "idea_generation", {"ideas": []})

    delete_content("user_1", content_id)
    assert len(list_usage("user_1")) == 1


def test_delete_foreign_content_not_found(make_user):
    make_user("user_1")
    content_id = save_content("user_1", "idea_generation", {"ideas": []})
    with pytest.raises(NotFoundError):
        delete_content("user_2", content_id)
