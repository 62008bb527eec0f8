import pytest

from jabterm.form import DataForm

FORM = {
    "form_type": "form",
    "title": "Configuration for room@muc.example.org",
    "instructions": "Complete this form to configure the room.",
    "fields": [
        {"var": "FORM_TYPE", "type": "hidden", "values": ["http://jabber.org/protocol/muc#roomconfig"]},
        {"var": "", "type": "fixed", "values": ["Room settings"]},
        {"var": "muc#roomconfig_roomname", "type": "text-single", "label": "Room name", "values": ["Lobby"]},
        {"var": "muc#roomconfig_persistentroom", "type": "boolean", "label": "Persistent", "values": ["0"]},
        {
            "var": "muc#roomconfig_whois",
            "type": "list-single",
            "label": "Who may see addresses",
            "values": ["moderators"],
            "options": [{"value": "moderators", "label": "Moderators"}, {"value": "anyone", "label": "Anyone"}],
        },
        {"var": "muc#roomconfig_roomadmins", "type": "jid-multi", "label": "Admins", "values": []},
        {"var": "muc#roomconfig_roomdesc", "type": "text-multi", "label": "Description",
         "values": ["first", "second"]},
        {"var": "muc#roomconfig_roomsecret", "type": "text-private", "label": "Password", "values": ["hunter2"]},
    ],
}


@pytest.fixture
def form():
    return DataForm.from_dict(FORM)


def test_tags_only_for_editable_fields(form):
    assert form.tags() == ["field1", "field2", "field3", "field4", "field5", "field6"]
    assert form.field("field1").var == "muc#roomconfig_roomname"
    assert not form.tag_exists("field7")
    with pytest.raises(KeyError):
        form.field("field9")


def test_boolean_values_normalised(form):
    form.set_value("field2", "on")
    assert form.values("field2") == ["1"]
    assert form.modified


def test_unique_values(form):
    assert form.add_unique_value("field4", "alice@example.org")
    assert not form.add_unique_value("field4", "alice@example.org")
    assert form.remove_value("field4", "alice@example.org")
    assert not form.remove_value("field4", "alice@example.org")


def test_remove_text_multi_by_index(form):
    assert form.remove_text_multi_value("field5", 1)
    assert form.values("field5") == ["second"]
    assert not form.remove_text_multi_value("field5", 4)


def test_render(form):
    lines = form.render()
    assert lines[0] == "Form title: Configuration for room@muc.example.org"
    assert "[field1] Room name: Lobby" in lines
    assert "[field2] Persistent: FALSE" in lines
    assert "    [moderators] Moderators <" in lines
    assert "    [val2] second" in lines
    assert "[field6] Password: *******" in lines
    assert not any("FORM_TYPE" in line for line in lines)


def test_field_help_lists_options(form):
    lines = form.field_help("field3")
    assert lines[0] == "field3 (list-single): Who may see addresses"
    assert "  where <value> is one of: moderators, anyone" in lines


def test_to_dict_keeps_hidden_values(form):
    form.set_value("field1", "Hall")
    data = form.to_dict()
    assert data["fields"][0]["values"] == ["http://jabber.org/protocol/muc#roomconfig"]
    assert data["fields"][2]["values"] == ["Hall"]


def test_unknown_field_type_rejected():
    with pytest.raises(ValueError):
        DataForm.from_dict({"fields": [{"var": "x", "type": "colour"}]})
