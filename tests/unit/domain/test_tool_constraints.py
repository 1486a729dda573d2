"""Tool constraint extraction tests."""

from src.domain.services.tool_constraints import extract_tool_constraints


class TestExtractToolConstraints:
    """Explicit tool count and name limits in a request."""

    def test_count_only(self):
        c = extract_tool_constraints("Build a GitHub MCP server with 3 tools")
        assert c.requested_count == 3
        assert c.requested_names == []
        assert c.max_tool_count == 5

    def test_colon_list(self):
        c = extract_tool_constraints("Make a Jira server. Tools: create_issue, list_issues and close_issue.")
        assert c.requested_names == ["create_issue", "list_issues", "close_issue"]
        assert c.requested_count == 3
        assert c.max_tool_count == 5

    def test_only_phrase(self):
        c = extract_tool_constraints("Create a Notion server, only search and fetch")
        assert c.requested_names == ["search", "fetch"]
        assert c.requested_count == 2

    def test_trailing_only(self):
        c = extract_tool_constraints("Create a calculator server with add and multiply only")
        assert c.requested_names == ["add", "multiply"]
        assert c.requested_count == 2
        assert c.max_tool_count == 4

    def test_trailing_only_with_tools_word(self):
        c = extract_tool_constraints("Build a Slack server with post_message, list_channels tools only.")
        assert c.requested_names == ["post_message", "list_channels"]

    def test_single_word_before_only_is_not_a_list(self):
        c = extract_tool_constraints("Create a weather server in Python only")
        assert c.requested_names == []

    def test_names_before_tools(self):
        c = extract_tool_constraints("Create a server with search and fetch tools")
        assert c.requested_names == ["search", "fetch"]

    def test_explicit_count_wins_over_name_count(self):
        c = extract_tool_constraints("Give me 4 tools: search, fetch")
        assert c.requested_count == 4
        assert c.requested_names == ["search", "fetch"]
        assert c.max_tool_count == 6

    def test_no_constraints(self):
        c = extract_tool_constraints("Create an MCP server for Stripe")
        assert c.is_empty
        assert c.max_tool_count is None

    def test_long_phrases_are_not_names(self):
        c = extract_tool_constraints("only the tools that make the most sense for a team")
        assert c.requested_names == []
