import logging
import os

import pytest

from keyscout.models import OutcomeKind
from keyscout.providers.source_control import GitHubProvider

requires_live = pytest.mark.skipif(
    os.getenv("RUN_LIVE_INTEGRATION") != "1",
    reason="Set RUN_LIVE_INTEGRATION=1 to execute live integration tests.",
)


@requires_live
def test_live_github_rejects_a_fabricated_token() -> None:
    provider = GitHubProvider(timeout=15.0, logger=logging.getLogger("test"))
    try:
        outcome = provider.validate("ghp_" + "A" * 36)
    finally:
        provider.close()
    # A throttled anonymous client may be told 403 with quota headers instead.
    assert outcome.kind in {OutcomeKind.UNAUTHORIZED, OutcomeKind.VALID_NO_CREDITS}
