"""Tests for discovery descriptor synthesis, ordering and pagination helpers."""

import pytest

from toolspace.catalog.discovery import (
    build_descriptors,
    display_name_for,
    namespace_icon,
    paginate,
    parse_cursor,
    sort_descriptors,
)
from toolspace.catalog.exceptions import InvalidInputError
from toolspace.catalog.models import NamespaceInfo, Operation, OperationSpec, derive_category, derive_priority
from toolspace.catalog.resolver import NamespaceResolver


@pytest.mark.parametrize(
    "info, expected",
    [
        (NamespaceInfo(name="gmail_kal"), "Gmail kal"),
        (NamespaceInfo(name="googledrive"), "Google Drive"),
        (NamespaceInfo(name="custom_crm_eu"), "Custom crm eu"),
        (NamespaceInfo(name="platform", display_name="Platform Tools"), "Platform"),
        (NamespaceInfo(name="slack_team", display_name="Slack Slack Team"), "Slack Team"),
        (NamespaceInfo(name="Gmail Work", account_label="kal@example.com"), "Gmail Work (kal@example.com)"),
        (NamespaceInfo(name="gmail_work", account_label="Work"), "gmail_work"),
    ],
)
def test_display_name_for(info, expected):
    assert display_name_for(info) == expected


def test_namespace_icon():
    assert namespace_icon("platform") == "⚙️"
    assert namespace_icon("company_acme") == "🏢"
    assert namespace_icon("gmail") == "🔧"


def test_build_descriptors_pairs_list_and_execute():
    resolver = NamespaceResolver()
    descriptors = build_descriptors(resolver, [NamespaceInfo(name="Gmail Work"), NamespaceInfo(name="gmail-work")])

    assert [d.name for d in descriptors] == [
        "gmail_work__list_tools",
        "gmail_work__execute_tool",
        "gmail_work_1__list_tools",
        "gmail_work_1__execute_tool",
    ]
    assert descriptors[2].source_name == "gmail-work"
    assert descriptors[0].category == "discovery"
    assert descriptors[1].input_schema["required"] == ["tool_name"]


def test_sort_descriptors_puts_discovery_first():
    resolver = NamespaceResolver()
    descriptors = build_descriptors(resolver, [NamespaceInfo(name=n) for n in ("zeta", "alpha")], humanize=False)
    assert [d.name for d in sort_descriptors(descriptors)] == [
        "alpha__list_tools",
        "zeta__list_tools",
        "alpha__execute_tool",
        "zeta__execute_tool",
    ]


@pytest.mark.parametrize("cursor, offset", [(None, 0), ("", 0), ("0", 0), ("25", 25)])
def test_parse_cursor(cursor, offset):
    assert parse_cursor(cursor) == offset


def test_paginate_rejects_bad_page_size():
    with pytest.raises(InvalidInputError):
        paginate([], None, 0)


def test_paginate_exact_boundary():
    resolver = NamespaceResolver()
    descriptors = build_descriptors(resolver, [NamespaceInfo(name="a"), NamespaceInfo(name="b")], humanize=False)
    page = paginate(descriptors, None, 4)
    assert len(page.descriptors) == 4
    assert page.next_cursor is None


class TestOperationMetadata:
    @pytest.mark.parametrize(
        "name, category",
        [
            ("send_email", "communication"),
            ("create_meeting", "calendar"),
            ("upload_file", "files"),
            ("manage_users", "administration"),
            ("run_workflow", "automation"),
            ("search_records", "data"),
            ("ping", "general"),
        ],
    )
    def test_derive_category(self, name, category):
        assert derive_category(name) == category

    def test_derive_priority(self):
        assert derive_priority("create_issue", "github") == "high"
        assert derive_priority("anything", "platform") == "high"
        assert derive_priority("get_issue", "github") == "medium"
        assert derive_priority("delete_issue", "github") == "low"

    def test_operation_from_spec(self):
        spec = OperationSpec.from_dict({"id": "GITHUB_CREATE_ISSUE", "description": "Create an issue"}, 0, "github")
        op = Operation.from_spec(spec, "github", "github", now=12.5)

        assert op.name == "github__GITHUB_CREATE_ISSUE"
        assert op.slug == "GITHUB_CREATE_ISSUE"
        assert op.registered_at == 12.5
        tool = op.to_mcp_tool()
        assert tool.name == "github__GITHUB_CREATE_ISSUE"
        assert tool.inputSchema == {"type": "object", "properties": {}, "required": []}

    def test_namespace_info_requires_name(self):
        with pytest.raises(ValueError):
            NamespaceInfo.from_dict({"displayName": "Nameless"})
        assert NamespaceInfo.from_dict({"namespace": "slack", "status": "active"}).connection_status == "active"
