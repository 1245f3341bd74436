"""Unit tests for prompt construction."""

import json
from dataclasses import replace

from toolcall_server.orchestration import (
    build_secondary_messages,
    build_tool_system_prompt,
    strip_tool_syntax,
)
from toolcall_server.orchestration.prompts import (
    SECONDARY_SYSTEM_PROMPT,
    describe_parameters,
    group_tools_by_service,
)


class TestToolSystemPrompt:
    """Tests for the system prompt listing available tools."""

    def test_groups_enabled_tools_by_service(self, registry_snapshot):
        grouped = group_tools_by_service(list(registry_snapshot.tools))

        assert list(grouped) == ["Record Service", "Statistics Service"]
        assert [tool.name for tool in grouped["Record Service"]] == ["lookup_record", "get_record_list"]

    def test_priority_orders_tools(self, registry_snapshot):
        tools = [replace(tool, priority=5) if tool.name == "get_record_list" else tool for tool in registry_snapshot.tools]
        grouped = group_tools_by_service(tools)

        assert [tool.name for tool in grouped["Record Service"]] == ["get_record_list", "lookup_record"]

    def test_prompt_sections(self, registry_snapshot):
        prompt = build_tool_system_prompt(list(registry_snapshot.tools))

        assert prompt.startswith("## Available tools")
        assert "### Record Service\n**Endpoint**: http://records.test/tools" in prompt
        assert "#### lookup_record\n**Description**: Fetch one record by its id" in prompt
        assert "**Category**: record_management" in prompt
        assert "**Parameters**: id (string) - Record id *required*" in prompt
        assert "archived_lookup" not in prompt
        assert "## Tool call formats" in prompt
        assert '"tool": "tool_name"' in prompt
        assert "<tool_call>" in prompt
        assert "## Rules" in prompt

    def test_general_category_and_usage(self, registry_snapshot):
        tools = [replace(tool, category="general", usage_count=4) for tool in registry_snapshot.enabled_tools]
        prompt = build_tool_system_prompt(tools)

        assert "**Category**" not in prompt
        assert "**Usage count**: 4" in prompt

    def test_base_prompt_is_prepended(self, registry_snapshot):
        prompt = build_tool_system_prompt(list(registry_snapshot.tools), base_prompt="You are a records assistant.")
        assert prompt.startswith("You are a records assistant.\n\n## Available tools")

    def test_no_enabled_tools(self, registry_snapshot):
        disabled = [replace(tool, enabled=False) for tool in registry_snapshot.tools]

        assert build_tool_system_prompt(disabled, base_prompt="Base") == "Base"
        assert build_tool_system_prompt([]) == ""


class TestDescribeParameters:
    """Tests for one-line parameter descriptions."""

    def test_json_schema(self):
        schema = {
            "type": "object",
            "properties": {"status": {"type": "string", "description": "Record status"}, "limit": {"type": "integer"}},
            "required": ["status"],
        }
        assert describe_parameters(schema) == "status (string) - Record status *required*, limit (integer)"

    def test_plain_mapping(self):
        assert describe_parameters({"id": "Record id", "verbose": True}) == "id - Record id, verbose"

    def test_empty(self):
        assert describe_parameters({}) == ""
        assert describe_parameters(None) == ""


class TestSecondaryMessages:
    """Tests for the narrowly scoped secondary-pass input."""

    def test_only_successful_payloads(self, make_result):
        results = [
            make_result("lookup_record", data={"id": "A1", "status": "open"}),
            make_result("perform_ttest", success=False, error="timeout: perform_ttest did not respond within 5s"),
        ]

        messages = build_secondary_messages("What is the status of A1?", results)

        assert messages[0] == {"role": "system", "content": SECONDARY_SYSTEM_PROMPT}
        content = messages[1]["content"]
        assert messages[1]["role"] == "user"
        assert content.startswith("Question:\nWhat is the status of A1?\n\nTool results (JSON):\n")
        payloads = json.loads(content.split("Tool results (JSON):\n", 1)[1])
        assert payloads == [{"tool": "lookup_record", "data": {"id": "A1", "status": "open"}}]
        assert "timeout" not in content

    def test_base64_is_masked(self, make_result):
        results = [make_result("lookup_record", data={"id": "A1", "image_base64": "QUJD" * 400})]
        content = build_secondary_messages("Show A1", results)[1]["content"]

        assert "QUJDQUJD" not in content
        assert "base64 data omitted" in content

    def test_missing_question(self, make_result):
        content = build_secondary_messages("", [make_result("lookup_record", data={"id": "A1"})])[1]["content"]
        assert content.startswith("Question:\nSummarize the tool results.")

    def test_system_prompt_forbids_invention(self):
        assert "Never invent" in SECONDARY_SYSTEM_PROMPT


class TestStripToolSyntax:
    """Tests for removing tool-call syntax from prose."""

    def test_removes_fenced_call(self):
        text = 'Let me check.\n\n```json\n{"tool": "lookup_record", "parameters": {"id": "A1"}}\n```\n\nOne moment.'
        assert strip_tool_syntax(text) == "Let me check.\n\nOne moment."

    def test_keeps_other_code_blocks(self):
        text = "Example:\n```python\nprint(1)\n```"
        assert strip_tool_syntax(text) == text

    def test_removes_tagged_calls(self):
        text = (
            "Checking.\n<tool_call>\n<name>lookup_record</name>\n</tool_call>\n"
            "<tool_call name=\"perform_ttest\" params='{}'/>\nDone."
        )
        assert strip_tool_syntax(text) == "Checking.\n\nDone."

    def test_empty(self):
        assert strip_tool_syntax("") == ""
