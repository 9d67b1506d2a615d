import logging

from openapi_adapter.schema import SchemaTranslator, translate_schema


def _depth(schema, key="child"):
    depth = 0
    node = schema
    while isinstance(node, dict) and "properties" in node:
        node = node["properties"][key]
        depth += 1
    return depth, node


class TestPlainSchemas:
    def test_plain_schema_round_trips(self):
        schema = {
            "type": "object",
            "description": "A user",
            "required": ["name"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "tags": {"type": "array", "items": {"type": "string"}},
                "score": {"type": "number", "minimum": 0},
            },
        }
        assert translate_schema(schema) == schema

    def test_property_order_is_preserved(self):
        schema = {"type": "object", "properties": {"z": {"type": "string"}, "a": {"type": "string"}, "m": {}}}
        assert list(translate_schema(schema)["properties"]) == ["z", "a", "m"]

    def test_boolean_schemas_pass_through(self):
        assert translate_schema(True) is True
        assert translate_schema(False) is False
        translated = translate_schema({"type": "object", "properties": {"anything": True}})
        assert translated["properties"]["anything"] is True

    def test_source_is_not_mutated(self):
        schema = {"type": "integer", "nullable": True, "example": 3}
        translate_schema(schema)
        assert schema == {"type": "integer", "nullable": True, "example": 3}


class TestTypeFolding:
    def test_nullable_string_becomes_string_or_null(self):
        assert translate_schema({"type": "string", "nullable": True}) == {"type": ["string", "null"]}

    def test_nullable_type_list_appends_null_once(self):
        assert translate_schema({"type": ["string", "number"], "nullable": True})["type"] == [
            "string",
            "number",
            "null",
        ]
        assert translate_schema({"type": ["string", "null"], "nullable": True})["type"] == ["string", "null"]

    def test_nullable_without_type_is_null(self):
        assert translate_schema({"nullable": True, "description": "x"}) == {"type": "null", "description": "x"}

    def test_nullable_false_is_dropped(self):
        assert translate_schema({"type": "string", "nullable": False}) == {"type": "string"}

    def test_integer_becomes_number_and_keeps_format(self):
        assert translate_schema({"type": "integer", "format": "int64"}) == {"type": "number", "format": "int64"}

    def test_nullable_integer(self):
        assert translate_schema({"type": "integer", "nullable": True})["type"] == ["number", "null"]

    def test_openapi_annotations_are_stripped(self):
        schema = {
            "type": "string",
            "example": "abc",
            "xml": {"name": "x"},
            "externalDocs": {"url": "https://example.com"},
            "deprecated": True,
            "readOnly": True,
            "writeOnly": False,
        }
        assert translate_schema(schema) == {"type": "string"}


class TestDegrades:
    def test_unresolved_ref_becomes_placeholder(self, caplog):
        with caplog.at_level(logging.WARNING):
            translated = translate_schema(
                {"type": "object", "properties": {"pet": {"$ref": "#/components/schemas/Missing"}}}
            )
        assert translated["properties"]["pet"] == {"type": "object"}
        assert "Unresolved $ref '#/components/schemas/Missing'" in caplog.text

    def test_malformed_node_becomes_placeholder(self, caplog):
        with caplog.at_level(logging.WARNING):
            translated = translate_schema({"type": "object", "properties": {"bad": "not-a-schema"}})
        assert translated["properties"]["bad"] == {"type": "object"}
        assert "Malformed schema node" in caplog.text


class TestCycles:
    def test_direct_self_reference_is_broken(self):
        node = {"type": "object", "properties": {"name": {"type": "string"}}}
        node["properties"]["self"] = node

        translated = SchemaTranslator().translate(node)

        assert translated["properties"]["name"] == {"type": "string"}
        assert translated["properties"]["self"] == {"type": "object"}

    def test_indirect_cycle_is_broken_at_reentry(self):
        a = {"type": "object", "properties": {}}
        b = {"type": "object", "properties": {"a": a}}
        a["properties"]["b"] = b

        translated = translate_schema(a)

        assert translated["properties"]["b"]["type"] == "object"
        assert translated["properties"]["b"]["properties"]["a"] == {"type": "object"}

    def test_cycle_through_array_items(self):
        category = {"type": "object", "properties": {"children": {"type": "array"}}}
        category["properties"]["children"]["items"] = category

        translated = translate_schema(category)

        assert translated["properties"]["children"] == {"type": "array", "items": {"type": "object"}}

    def test_cycle_through_composition_members(self):
        node = {"type": "object", "allOf": []}
        node["allOf"].append(node)
        node["allOf"].append({"type": "integer"})

        translated = translate_schema(node)

        assert translated["allOf"] == [{"type": "object"}, {"type": "number"}]

    def test_shared_sibling_is_not_a_cycle(self):
        address = {"type": "object", "properties": {"city": {"type": "string"}}}
        schema = {"type": "object", "properties": {"home": address, "work": address}}

        translated = translate_schema(schema)

        assert translated["properties"]["home"] == address
        assert translated["properties"]["work"] == address
        assert translated["properties"]["home"] is not translated["properties"]["work"]

    def test_visited_seed_is_honoured(self):
        outer = {"type": "object", "properties": {"name": {"type": "string"}}}
        inner = {"type": "object", "properties": {"outer": outer}}

        translated = SchemaTranslator().translate(inner, visited=frozenset({id(outer)}))

        assert translated["properties"]["outer"] == {"type": "object"}

    def test_deep_acyclic_nesting_does_not_exhaust_the_stack(self):
        levels = 3000
        leaf = {"type": "integer"}
        node = leaf
        for _ in range(levels):
            node = {"type": "object", "properties": {"child": node}}

        translated = translate_schema(node)

        depth, innermost = _depth(translated)
        assert depth == levels
        assert innermost == {"type": "number"}
