"""
DuplicateService: input validation, compute budget and error logging.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from services.listings.duplicates.errors import (
    EntityNotFoundError,
    InvalidInputError,
    MergeStep,
    MergeStepError,
    MergeTimeoutError,
)
from services.listings.duplicates.service import DuplicateService, validate_threshold
from services.listings.duplicates.types import EntityKind
from services.listings.tests.helpers.factories import make_venue
from services.listings.tests.helpers.fake_repository import make_repository

pytestmark = pytest.mark.asyncio


@pytest.fixture
def error_logger():
    logger = AsyncMock()
    logger.log = AsyncMock(return_value="log-id")
    return logger


def _service(repo, error_logger, **kwargs):
    return DuplicateService(repo, error_logger=error_logger, **kwargs)


class TestValidation:
    async def test_unknown_kind(self, repo, error_logger):
        with pytest.raises(InvalidInputError):
            await _service(repo, error_logger).find_duplicates("organizers")

    @pytest.mark.parametrize("threshold", [0.49, 1.01, -1, "high"])
    async def test_threshold_out_of_range(self, repo, error_logger, threshold):
        with pytest.raises(InvalidInputError):
            await _service(repo, error_logger).find_duplicates("venues", threshold)

    async def test_threshold_defaults(self):
        assert validate_threshold(None) == 0.7
        assert validate_threshold(0.5) == 0.5
        assert validate_threshold(1.0) == 1.0

    @pytest.mark.parametrize("method", ["preview_merge", "execute_merge"])
    async def test_identical_ids_rejected(self, vendor_scenario, error_logger, method):
        s = vendor_scenario
        service = _service(s["repo"], error_logger)
        vendor_id = s["primary"]["id"]
        with pytest.raises(InvalidInputError):
            await getattr(service, method)("vendors", vendor_id, vendor_id)
        assert s["repo"].writes == []
        error_logger.log.assert_not_called()

    @pytest.mark.parametrize("ids", [("", "x"), (None, "x"), ("x", None)])
    async def test_missing_ids_rejected(self, repo, error_logger, ids):
        with pytest.raises(InvalidInputError):
            await _service(repo, error_logger).execute_merge("venues", *ids)

    async def test_id_scope_needs_two_ids(self, repo, error_logger):
        with pytest.raises(InvalidInputError):
            await _service(repo, error_logger).find_duplicates("venues", ids=["only-one"])

    async def test_not_found_not_logged(self, repo, error_logger):
        repo.add("venues", make_venue())
        with pytest.raises(EntityNotFoundError):
            await _service(repo, error_logger).preview_merge("venues", "a", "b")
        error_logger.log.assert_not_called()


class TestOperations:
    async def test_find_accepts_string_kind(self, repo, error_logger):
        repo.add("venues", make_venue(name="Fairgrounds"), make_venue(name="The Fairgrounds"))
        response = await _service(repo, error_logger).find_duplicates("venues", group=True)
        assert response.kind is EntityKind.VENUES
        assert response.threshold == 0.7
        assert len(response.duplicates) == 1
        assert len(response.groups) == 1

    async def test_preview_then_execute(self, vendor_scenario, error_logger):
        s = vendor_scenario
        service = _service(s["repo"], error_logger)

        preview = await service.preview_merge("vendors", s["primary"]["id"], s["duplicate"]["id"])
        result = await service.execute_merge("vendors", s["primary"]["id"], s["duplicate"]["id"])

        assert preview.can_merge is True
        assert result.transferred_relationships == preview.relationships_to_transfer
        data = result.to_dict()
        assert data["success"] is True
        assert data["deletedId"] == s["duplicate"]["id"]
        assert data["transferredRelationships"] == {"eventVendors": 2, "favorites": 0}


class TestBudget:
    async def test_timeout_reports_running_step(self, vendor_scenario, error_logger):
        s = vendor_scenario
        original = s["repo"].repoint_related

        async def slow_repoint(*args, **kwargs):
            await asyncio.sleep(1)
            return await original(*args, **kwargs)

        service = _service(s["repo"], error_logger, timeout_s=0.05)
        with patch.object(s["repo"], "repoint_related", slow_repoint):
            with pytest.raises(MergeTimeoutError) as exc_info:
                await service.execute_merge("vendors", s["primary"]["id"], s["duplicate"]["id"])

        assert exc_info.value.context.step is MergeStep.TRANSFER_EVENT_VENDORS
        assert exc_info.value.retryable is True
        error_logger.log.assert_awaited_once()
        assert error_logger.log.await_args.kwargs["level"] == "warn"
        assert error_logger.log.await_args.kwargs["context"]["step"] == "transfer_event_vendors"

        # The abandoned attempt is safe to repeat
        result = await _service(s["repo"], error_logger).execute_merge(
            "vendors", s["primary"]["id"], s["duplicate"]["id"]
        )
        assert result.transferred_relationships.event_vendors == 2
        assert s["repo"].references_to(s["duplicate"]["id"]) == []

    async def test_step_failure_logged_as_error(self, vendor_scenario, error_logger):
        s = vendor_scenario
        s["repo"].fail_next("fold_entity", RuntimeError("disk full"))
        service = _service(s["repo"], error_logger)

        with pytest.raises(MergeStepError):
            await service.execute_merge("vendors", s["primary"]["id"], s["duplicate"]["id"])

        kwargs = error_logger.log.await_args.kwargs
        assert kwargs["level"] == "error"
        assert kwargs["source"] == "duplicates.merge"
        assert kwargs["context"]["step"] == "fold"
        assert isinstance(kwargs["error"], MergeStepError)

    async def test_timeout_in_fold_discards_pending_work_before_logging(
        self, vendor_scenario, error_logger
    ):
        s = vendor_scenario
        repo = s["repo"]
        order = []

        async def slow_fold(*args, **kwargs):
            await asyncio.sleep(1)

        async def rollback():
            order.append("rollback")

        error_logger.log.side_effect = lambda *args, **kwargs: order.append("log")
        service = _service(repo, error_logger, timeout_s=0.05)
        with patch.object(repo, "fold_entity", slow_fold), patch.object(repo, "rollback", rollback):
            with pytest.raises(MergeTimeoutError) as exc_info:
                await service.execute_merge("vendors", s["primary"]["id"], s["duplicate"]["id"])

        assert exc_info.value.context.step is MergeStep.FOLD
        assert order == ["rollback", "log"]

        # The duplicate survived the abandoned fold, so a retry still folds it
        result = await _service(repo, error_logger).execute_merge(
            "vendors", s["primary"]["id"], s["duplicate"]["id"]
        )
        assert result.already_merged is False
        assert repo.row("vendors", s["duplicate"]["id"]) is None
        assert repo.row("vendors", s["primary"]["id"])["contactEmail"] == s["duplicate"]["contactEmail"]

    async def test_step_failure_rolls_back_repository(self, vendor_scenario, error_logger):
        s = vendor_scenario
        s["repo"].fail_next("repoint_related", RuntimeError("connection reset"))

        with pytest.raises(MergeStepError):
            await _service(s["repo"], error_logger).execute_merge(
                "vendors", s["primary"]["id"], s["duplicate"]["id"]
            )

        assert s["repo"].rollbacks == 1
        error_logger.log.assert_awaited_once()

    async def test_caller_errors_do_not_touch_the_session(self, repo, error_logger):
        repo.add("venues", make_venue())
        with pytest.raises(EntityNotFoundError):
            await _service(repo, error_logger).execute_merge("venues", "a", "b")
        assert repo.rollbacks == 0
