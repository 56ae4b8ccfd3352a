"""Property-based tests for payload validation.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import json

from hypothesis import given, settings, strategies as st

from src.bugbridge.webhook.models import EventType
from src.bugbridge.webhook.parser import PayloadValidationError, parse_payload

non_empty_text = st.text(min_size=1, max_size=80).filter(lambda s: s.strip())

commits = st.lists(
    st.fixed_dictionaries(
        {
            "message": non_empty_text,
            "url": non_empty_text.map(lambda s: f"https://github.com/acme/widgets/commit/{s}"),
        }
    ),
    max_size=10,
)


class TestParserProperties:
    @given(
        action=non_empty_text,
        title=non_empty_text,
        number=st.integers(min_value=1, max_value=2**31),
        repository=non_empty_text,
    )
    @settings(max_examples=100)
    def test_well_formed_pull_request_accepted(
        self, action: str, title: str, number: int, repository: str
    ) -> None:
        """Property 1: every well-formed pull request payload parses."""
        body = {
            "action": action,
            "pull_request": {
                "html_url": f"https://github.com/{repository}/pull/{number}",
                "title": title,
                "number": number,
            },
            "repository": {"full_name": repository},
        }

        payload = parse_payload(EventType.PULL_REQUEST, json.dumps(body).encode())

        assert payload.number == number
        assert payload.attachment_filename == f"github-{number}-url.txt"
        assert payload.attachment_description == f"[{repository}] {title} (#{number})"

    @given(commit_list=commits, pusher=non_empty_text)
    @settings(max_examples=100)
    def test_well_formed_push_accepted(self, commit_list, pusher: str) -> None:
        """Property 2: every well-formed push payload parses, keeping commit order."""
        body = {"ref": "refs/heads/main", "pusher": {"name": pusher}, "commits": commit_list}

        payload = parse_payload(EventType.PUSH, json.dumps(body).encode())

        assert [c.message for c in payload.commits] == [c["message"] for c in commit_list]
        assert [c.url for c in payload.commits] == [c["url"] for c in commit_list]

    @given(commit_list=commits.filter(bool), data=st.data())
    @settings(max_examples=100)
    def test_any_malformed_commit_rejects_push(self, commit_list, data) -> None:
        """Property 3: one commit without a url rejects the whole push."""
        index = data.draw(st.integers(min_value=0, max_value=len(commit_list) - 1))
        del commit_list[index]["url"]
        body = {"ref": "refs/heads/main", "pusher": {"name": "octocat"}, "commits": commit_list}

        try:
            parse_payload(EventType.PUSH, json.dumps(body).encode())
        except PayloadValidationError as e:
            assert f"commits[{index}]" in e.reason
        else:
            raise AssertionError("malformed commit accepted")
