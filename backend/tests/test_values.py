from dora.values import TaggedValue, ValueKind


def test_kinds_are_inferred_from_python_types() -> None:
    assert TaggedValue.of(True).kind is ValueKind.BOOL
    assert TaggedValue.of(3).kind is ValueKind.NUMBER
    assert TaggedValue.of(2.5).kind is ValueKind.NUMBER
    assert TaggedValue.of("x").kind is ValueKind.STRING
    assert TaggedValue.of(["a"]).kind is ValueKind.LIST
    assert TaggedValue.of({"a": 1}).kind is ValueKind.MAP
    assert TaggedValue.of(None).kind is ValueKind.OTHER


def test_scalars_render_plainly() -> None:
    assert TaggedValue.of("com.apple.foo").render() == "com.apple.foo"
    assert TaggedValue.of(True).render() == "true"
    assert TaggedValue.of(False).render() == "false"
    assert TaggedValue.of(1).render() == "1"
    assert TaggedValue.of(2.5).render() == "2.5"


def test_list_items_are_compact_json_joined_by_comma_space() -> None:
    value = TaggedValue.of(["kTCCServiceCamera", 1, True, {"b": 2, "a": 1}])
    assert value.render() == '"kTCCServiceCamera", 1, true, {"a":1,"b":2}'


def test_map_renders_sorted_key_value_pairs() -> None:
    value = TaggedValue.of({"zeta": "z", "alpha": [1, 2], "mid": False})
    assert value.render() == 'alpha: [1,2], mid: false, zeta: "z"'


def test_empty_collections_and_none_render_empty() -> None:
    assert TaggedValue.of([]).render() == ""
    assert TaggedValue.of({}).render() == ""
    assert TaggedValue.of(None).render() == ""
