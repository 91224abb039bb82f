"""Tests for {{placeholder}} extraction and the derived variables list."""

from schemas.sequence import (
    EmailContent, LinkedInVisitContent, ManualTaskContent, NodeKind, SequenceNode,
)
from services.template_variables import (
    ALLOWED_VARIABLES, extract_variables, insert_variable, ordered_variables, sync_node_variables,
)


def _email_node(subject: str = "", message: str = "") -> SequenceNode:
    return SequenceNode(
        id="n1",
        kind=NodeKind.ACTION,
        step_type="email",
        content=EmailContent(subject=subject, message=message),
    )


class TestExtractVariables:
    def test_aliases_are_normalized(self):
        assert extract_variables("Hi {{firstName}} at {{jobTitle}}") == {"first_name", "position"}

    def test_title_alias(self):
        assert extract_variables("As {{title}}") == {"position"}

    def test_unknown_keys_are_dropped(self):
        assert extract_variables("{{foo}} {{company}}") == {"company"}

    def test_all_allowed_keys(self):
        text = " ".join("{{" + key + "}}" for key in ALLOWED_VARIABLES)
        assert extract_variables(text) == set(ALLOWED_VARIABLES)

    def test_inner_whitespace_is_tolerated(self):
        assert extract_variables("Mail {{ email }}") == {"email"}

    def test_literal_braces_are_not_placeholders(self):
        assert extract_variables("{name} and {{ }} and {{1abc}}") == set()

    def test_empty_text(self):
        assert extract_variables("") == set()

    def test_repeated_placeholder_counts_once(self):
        assert extract_variables("{{name}} {{name}}") == {"name"}


class TestOrderedVariables:
    def test_canonical_order(self):
        assert ordered_variables({"position", "name", "company"}) == ["name", "company", "position"]


class TestSyncNodeVariables:
    def test_subject_and_message_are_both_scanned(self):
        node = _email_node(subject="Hi {{first_name}}", message="About {{company}}")
        assert sync_node_variables(node) is True
        assert node.content.variables == ["first_name", "company"]

    def test_second_sync_is_a_no_op(self):
        node = _email_node(subject="Hi {{first_name}}")
        assert sync_node_variables(node) is True
        assert sync_node_variables(node) is False
        assert node.content.variables == ["first_name"]

    def test_order_of_stored_list_does_not_matter(self):
        node = _email_node(subject="{{company}} {{name}}")
        node.content.variables = ["company", "name"]
        assert sync_node_variables(node) is False
        assert node.content.variables == ["company", "name"]

    def test_stale_variables_are_removed(self):
        node = _email_node(subject="No placeholders")
        node.content.variables = ["email"]
        assert sync_node_variables(node) is True
        assert node.content.variables == []

    def test_manual_task_title_and_description(self):
        node = SequenceNode(
            id="t1",
            kind=NodeKind.ACTION,
            step_type="manual-task",
            content=ManualTaskContent(task_title="Call {{name}}", task_description="Ask {{company}}"),
        )
        sync_node_variables(node)
        assert node.content.variables == ["name", "company"]

    def test_visit_has_no_template_text(self):
        node = SequenceNode(id="v1", kind=NodeKind.ACTION, step_type="linkedin-visit",
                            content=LinkedInVisitContent())
        assert sync_node_variables(node) is False
        assert node.content.variables == []


class TestInsertVariable:
    def test_appends_placeholder_and_syncs(self):
        node = _email_node(subject="Hi ")
        assert insert_variable(node, "first_name", "subject") is True
        assert node.content.subject == "Hi {{first_name}}"
        assert node.content.variables == ["first_name"]

    def test_camel_case_field_name(self):
        node = SequenceNode(id="t1", kind=NodeKind.ACTION, step_type="manual-task",
                            content=ManualTaskContent(task_title="Call "))
        assert insert_variable(node, "name", "taskTitle") is True
        assert node.content.task_title == "Call {{name}}"
        assert node.content.variables == ["name"]

    def test_unknown_key_is_a_no_op(self):
        node = _email_node(subject="Hi ")
        assert insert_variable(node, "jobTitle", "subject") is False
        assert node.content.subject == "Hi "
        assert node.content.variables == []

    def test_field_missing_for_kind_is_a_no_op(self):
        node = SequenceNode(id="v1", kind=NodeKind.ACTION, step_type="linkedin-visit",
                            content=LinkedInVisitContent())
        assert insert_variable(node, "name", "message") is False

    def test_non_text_field_is_a_no_op(self):
        node = _email_node()
        assert insert_variable(node, "name", "delay") is False
        assert node.content.delay == 0
