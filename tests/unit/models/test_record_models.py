"""Tests for deployment record models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from cutover.models.deployment import (
    DeploymentRequest,
    DeploymentStatus,
    FailureStage,
)
from cutover.models.record import DeploymentRecord, HealthCheckOutcome

STARTED = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def request_model() -> DeploymentRequest:
    return DeploymentRequest(
        app_name="site", image_reference="site:1.4", host_port=8080, container_port=80
    )


@pytest.mark.unit
class TestDeploymentRecord:
    """Tests for DeploymentRecord invariants."""

    def test_failed_record_requires_stage(
        self, request_model: DeploymentRequest
    ) -> None:
        with pytest.raises(ValidationError, match="failure_stage is required"):
            DeploymentRecord(
                request=request_model,
                status=DeploymentStatus.FAILED,
                started_at=STARTED,
                finished_at=STARTED,
            )

    def test_succeeded_record_rejects_stage(
        self, request_model: DeploymentRequest
    ) -> None:
        with pytest.raises(ValidationError, match="must be empty"):
            DeploymentRecord(
                request=request_model,
                status=DeploymentStatus.SUCCEEDED,
                started_at=STARTED,
                finished_at=STARTED,
                failure_stage=FailureStage.AUTH,
            )

    def test_duration_and_success(self, request_model: DeploymentRequest) -> None:
        record = DeploymentRecord(
            request=request_model,
            status=DeploymentStatus.SUCCEEDED,
            started_at=STARTED,
            finished_at=STARTED + timedelta(seconds=42),
            health_check_history=(
                HealthCheckOutcome(
                    attempt_number=1,
                    timestamp=STARTED,
                    succeeded=True,
                    http_status=200,
                ),
            ),
        )

        assert record.succeeded
        assert record.duration_seconds == 42.0

    def test_json_round_trip_keeps_stage_values(
        self, request_model: DeploymentRequest
    ) -> None:
        record = DeploymentRecord(
            request=request_model,
            status=DeploymentStatus.FAILED,
            started_at=STARTED,
            finished_at=STARTED,
            failure_stage=FailureStage.PORT_RECONCILE,
            error="daemon unavailable",
        )

        dumped = record.model_dump(mode="json")

        assert dumped["failure_stage"] == "port-reconcile"
        assert dumped["status"] == "failed"
        assert DeploymentRecord.model_validate(dumped) == record

    def test_attempt_numbers_start_at_one(self) -> None:
        with pytest.raises(ValidationError):
            HealthCheckOutcome(attempt_number=0, timestamp=STARTED, succeeded=False)
