# tests/test_coordinator.py
import threading
import time

import pytest

from adaptive_rag.config import load_coordinator_config
from adaptive_rag.errors import WorkflowFailure
from adaptive_rag.memory.shared_store import MISSING
from adaptive_rag.models import (
    Complexity,
    ContentType,
    DeviceConstraints,
    ExecutionResult,
    MessageKind,
    ProcessingPower,
    StrategySelection,
    StructuralProfile,
    UserPreferences,
    VectorStoreKind,
    WorkflowState,
)
from adaptive_rag.observability.metrics import MetricsTracker
from adaptive_rag.strategy import catalog
from adaptive_rag.strategy.catalog import StrategyName
from adaptive_rag.strategy.selector import StrategySelector, estimate_performance
from adaptive_rag.workflow.coordinator import (
    WorkflowCoordinator,
    compose_confidence,
    merge_preferences,
)


# ============================================================
# TEST DOUBLES
# ============================================================

class FailingClassifier:
    def classify(self, content, url=None, metadata=None):
        raise RuntimeError("classifier exploded")


class SlowClassifier:
    def classify(self, content, url=None, metadata=None):
        time.sleep(1)
        raise AssertionError("result should have been abandoned")


class SlowSelector(StrategySelector):
    def select(self, profile, device, preferences=None):
        time.sleep(1)
        return super().select(profile, device, preferences)


class FlakySelector(StrategySelector):
    """Fails on the first call only."""

    def __init__(self, memory_store):
        super().__init__(memory_store)
        self.calls = 0

    def select(self, profile, device, preferences=None):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("transient selector error")
        return super().select(profile, device, preferences)


class PinnedSelector:
    """Always picks the same strategy, admissible or not."""

    def __init__(self, key):
        self.strategy = catalog.get_strategy(key)

    def select(self, profile, device, preferences=None):
        return StrategySelection(
            chosen=self.strategy,
            confidence=0.9,
            reasoning="pinned",
            performance_estimate=estimate_performance(self.strategy, profile, device),
        )


class SlowDelegate:
    """Blocks until cancelled."""

    def __init__(self):
        self.cancel_event = None
        self.returned = threading.Event()

    def execute(self, content, question, strategy, cancel_event):
        self.cancel_event = cancel_event
        cancel_event.wait(5)
        self.returned.set()
        return ExecutionResult(answer="too late")


class RecordingAnalytics:

    def __init__(self):
        self.events = []

    def track_workflow_completed(self, **properties):
        self.events.append(("completed", properties))

    def track_fallback(self, distinct_id, workflow_id, stage, error_type, strategy):
        self.events.append(("fallback", stage))

    def track_error(self, distinct_id, error_type, error_message, endpoint):
        self.events.append(("error", endpoint))


@pytest.fixture
def make_coordinator(store):
    """Factory so each test picks its own collaborators."""

    created = []

    def factory(**kwargs):
        config_overrides = kwargs.pop("config", {})
        config = load_coordinator_config(**{"max_retries": 0, "timeout_seconds": 5.0, **config_overrides})
        coordinator = WorkflowCoordinator(store, config=config, **kwargs)
        created.append(coordinator)
        return coordinator

    yield factory

    for coordinator in created:
        coordinator.close()


# ============================================================
# HELPERS
# ============================================================

class TestHelpers:

    def test_compose_confidence(self):
        assert compose_confidence(0.8, 0.9) == pytest.approx(0.79)

    def test_compose_confidence_floor(self):
        assert compose_confidence(0.1, 0.1) == 0.1

    def test_compose_confidence_ceiling(self):
        assert compose_confidence(1.0, 1.0) == pytest.approx(0.95)

    def test_merge_preferences_explicit_wins(self):
        stored = UserPreferences(prioritize_speed=True, preferred_strategies=["html-fast"])
        explicit = UserPreferences(prioritize_speed=False, prioritize_accuracy=True)

        merged = merge_preferences(stored, explicit)

        assert merged.prioritize_speed is False
        assert merged.prioritize_accuracy is True
        assert merged.preferred_strategies == ["html-fast"]

    def test_merge_preferences_missing_side(self):
        prefs = UserPreferences(prioritize_speed=True)

        assert merge_preferences(None, prefs) is prefs
        assert merge_preferences(prefs, None) is prefs
        assert merge_preferences(None, None) is None


# ============================================================
# HAPPY PATH
# ============================================================

class TestProcess:

    def test_complex_html_on_desktop(self, make_coordinator, complex_html, desktop):
        coordinator = make_coordinator()

        result = coordinator.process(complex_html, desktop)

        assert result.state == WorkflowState.COMPLETED
        assert result.fallback_used is False
        assert result.final_strategy.key == "html-comprehensive"
        assert result.content_analysis.profile.content_type == ContentType.HTML
        assert result.confidence == compose_confidence(
            result.content_analysis.confidence,
            result.strategy_selection.confidence,
        )
        assert result.confidence == pytest.approx(0.742)
        assert result.execution is None

    def test_simple_text_on_offline_phone(self, make_coordinator, simple_text, offline_phone):
        coordinator = make_coordinator()

        result = coordinator.process(simple_text, offline_phone)

        assert result.final_strategy.key == "text-sentence"
        assert result.final_strategy.device_optimized
        assert result.final_strategy.embedding_model.value == "text-embedding-3-small"
        assert result.final_strategy.vector_store == VectorStoreKind.MEMORY

    def test_message_sequence(self, make_coordinator, simple_text, desktop):
        coordinator = make_coordinator()

        result = coordinator.process(simple_text, desktop)

        route = [(m.sender, m.recipient, m.kind) for m in result.messages]

        assert route == [
            ("workflow_coordinator", "content_classifier", MessageKind.REQUEST),
            ("content_classifier", "workflow_coordinator", MessageKind.RESPONSE),
            ("workflow_coordinator", "strategy_selector", MessageKind.REQUEST),
            ("strategy_selector", "workflow_coordinator", MessageKind.RESPONSE),
            ("workflow_coordinator", "strategy_validation", MessageKind.REQUEST),
            ("strategy_validation", "workflow_coordinator", MessageKind.RESPONSE),
            ("workflow_coordinator", "workflow_coordinator", MessageKind.NOTIFICATION),
            ("workflow_coordinator", "shared_memory", MessageKind.NOTIFICATION),
            ("workflow_coordinator", "workflow_coordinator", MessageKind.NOTIFICATION),
        ]
        assert [m.payload["stage"] for m in result.messages] == [
            "classification", "classification",
            "selection", "selection",
            "validation", "validation",
            "delegation",
            "recording",
            "completed",
        ]
        assert result.messages[-1].payload["event"] == "workflow_completed"
        assert result.messages[5].payload["validated"] is True
        assert all(m.workflow_id == result.workflow_id for m in result.messages)
        assert result.workflow_id.startswith("workflow_")

    def test_delegate_runs_with_question(self, make_coordinator, fake_delegate, simple_text, desktop):
        coordinator = make_coordinator(delegate=fake_delegate)

        result = coordinator.process(simple_text, desktop, question="Where did the cat sit?")

        assert result.execution.answer == fake_delegate.answer
        assert fake_delegate.calls == [("Where did the cat sit?", result.final_strategy.key)]

    def test_delegate_skipped_without_question(self, make_coordinator, fake_delegate, simple_text, desktop):
        coordinator = make_coordinator(delegate=fake_delegate)

        coordinator.process(simple_text, desktop)

        assert fake_delegate.calls == []

    def test_analytics_notified(self, make_coordinator, simple_text, desktop):
        analytics = RecordingAnalytics()
        coordinator = make_coordinator(analytics=analytics)

        coordinator.process(simple_text, desktop)

        assert analytics.events[0][0] == "completed"
        assert analytics.events[0][1]["strategy"] == "Text Sentence Processing"


class TestCaching:

    def test_second_run_is_cached(self, make_coordinator, simple_text, desktop):
        coordinator = make_coordinator()

        first = coordinator.process(simple_text, desktop)
        second = coordinator.process(simple_text, desktop)

        assert first.content_analysis.cached is False
        assert second.content_analysis.cached is True
        assert second.content_analysis.processing_time_ms == 0.0
        assert second.content_analysis.profile == first.content_analysis.profile

        notice = second.messages[0]
        assert notice.sender == "shared_memory"
        assert notice.kind == MessageKind.NOTIFICATION

    def test_cache_expires(self, make_coordinator, clock, simple_text, desktop):
        coordinator = make_coordinator()

        coordinator.process(simple_text, desktop)
        clock.advance(24 * 3600)

        result = coordinator.process(simple_text, desktop)

        assert result.content_analysis.cached is False

    def test_cache_hit_counted(self, make_coordinator, simple_text, desktop):
        coordinator = make_coordinator()

        coordinator.process(simple_text, desktop)
        coordinator.process(simple_text, desktop)

        assert coordinator.get_metrics()["cache_hits"] == 1


class TestRecording:

    def test_performance_observation_written(self, make_coordinator, store, simple_text, desktop):
        coordinator = make_coordinator()

        result = coordinator.process(simple_text, desktop)

        observations = store.get_strategy_performance(strategy_name=result.final_strategy.name)

        assert len(observations) == 1
        assert observations[0].success is True
        assert observations[0].device_class == "desktop"

    def test_observed_accuracy_from_execution(self, make_coordinator, store, fake_delegate, simple_text, desktop):
        coordinator = make_coordinator(delegate=fake_delegate)

        result = coordinator.process(simple_text, desktop, question="What happened?")

        observation = store.get_strategy_performance(strategy_name=result.final_strategy.name)[0]

        assert observation.accuracy == 0.9

    def test_history_and_introspection(self, make_coordinator, simple_text, desktop):
        coordinator = make_coordinator()

        result = coordinator.process(simple_text, desktop)

        history = coordinator.get_workflow_history()

        assert history[-1]["workflow_id"] == result.workflow_id
        assert history[-1]["fallback"] is False
        assert coordinator.list_active_workflows() == []
        assert coordinator.list_finished_workflows() == [result.workflow_id]
        assert not coordinator.is_active(result.workflow_id)
        assert len(coordinator.get_workflow_messages(result.workflow_id)) == len(result.messages)
        assert coordinator.get_workflow_messages("workflow_unknown") is None

    def test_history_limit(self, make_coordinator, simple_text, desktop):
        coordinator = make_coordinator()

        for _ in range(3):
            coordinator.process(simple_text, desktop)

        assert len(coordinator.get_workflow_history(limit=2)) == 2


class TestPreferences:

    @pytest.mark.parametrize("parallel", [True, False])
    def test_preferences_stored_and_merged(self, make_coordinator, store, simple_text, desktop, parallel):
        coordinator = make_coordinator(config={"enable_parallel_processing": parallel})
        metadata = {"user_id": "u1"}

        coordinator.process(simple_text, desktop, metadata=metadata, preferences=UserPreferences(prioritize_speed=True))
        coordinator.process(simple_text, desktop, metadata=metadata, preferences=UserPreferences(prioritize_accuracy=True))

        stored = store.get_user_preferences(user_id="u1").preferences

        assert stored.prioritize_speed is True
        assert stored.prioritize_accuracy is True

    def test_no_identity_no_storage(self, make_coordinator, store, simple_text, desktop):
        coordinator = make_coordinator()

        coordinator.process(simple_text, desktop, preferences=UserPreferences(prioritize_speed=True))

        assert store.stats().by_kind.get("user_preferences") is None


# ============================================================
# VALIDATION
# ============================================================

class TestValidation:

    def _profile(self):
        return StructuralProfile(content_type=ContentType.HTML, complexity=Complexity.COMPLEX, word_count=5600)

    def test_mobile_substitution(self, make_coordinator, offline_phone):
        coordinator = make_coordinator()
        strategy = catalog.get_strategy(StrategyName.HTML_COMPREHENSIVE)

        final = coordinator.validate_strategy(strategy, self._profile(), offline_phone)

        assert final.key == "mobile-optimized"

    def test_memory_substitution(self, make_coordinator):
        coordinator = make_coordinator()
        strategy = catalog.get_strategy(StrategyName.HTML_COMPREHENSIVE)
        small_desktop = DeviceConstraints(memory_available=300, processing_power=ProcessingPower.HIGH)

        final = coordinator.validate_strategy(strategy, self._profile(), small_desktop)

        assert final.key == "html-fast"

    def test_fitting_strategy_kept(self, make_coordinator, desktop):
        coordinator = make_coordinator()
        strategy = catalog.get_strategy(StrategyName.HTML_COMPREHENSIVE)

        assert coordinator.validate_strategy(strategy, self._profile(), desktop) is strategy

    def test_substitution_is_announced(self, make_coordinator, complex_html, offline_phone):
        coordinator = make_coordinator(selector=PinnedSelector(StrategyName.HTML_COMPREHENSIVE))

        result = coordinator.process(complex_html, offline_phone)

        assert result.strategy_selection.chosen.key == "html-comprehensive"
        assert result.final_strategy.key == "mobile-optimized"
        events = [m.payload.get("event") for m in result.messages if m.kind == MessageKind.NOTIFICATION]
        assert "strategy_substituted" in events


# ============================================================
# FAILURES
# ============================================================

class TestFallback:

    def test_classifier_failure_falls_back(self, make_coordinator, store, simple_text, desktop):
        coordinator = make_coordinator(classifier=FailingClassifier())

        result = coordinator.process(simple_text, desktop)

        assert result.fallback_used is True
        assert result.confidence == 0.3
        assert result.state == WorkflowState.COMPLETED
        assert result.final_strategy.key == "text-paragraph"
        assert result.error.startswith("RuntimeError")

        kinds = [m.kind for m in result.messages]
        assert MessageKind.ERROR in kinds
        assert result.messages[-1].payload["event"] == "fallback"

        observation = store.get_strategy_performance(strategy_name="Text Paragraph Processing")[0]
        assert observation.success is False

        assert store.get("error_pattern_classification_RuntimeError") is not MISSING

    def test_mobile_fallback_strategy(self, make_coordinator, simple_text, offline_phone):
        coordinator = make_coordinator(classifier=FailingClassifier())

        result = coordinator.process(simple_text, offline_phone)

        assert result.final_strategy.key == "mobile-optimized"

    def test_fallback_counted(self, make_coordinator, simple_text, desktop):
        analytics = RecordingAnalytics()
        coordinator = make_coordinator(classifier=FailingClassifier(), analytics=analytics)

        coordinator.process(simple_text, desktop)

        assert coordinator.get_metrics()["fallback_workflows"] == 1
        assert analytics.events == [("fallback", "classification")]
        assert coordinator.get_workflow_history()[-1]["fallback"] is True

    def test_fallback_disabled_raises(self, make_coordinator, simple_text, desktop):
        metrics = MetricsTracker()
        analytics = RecordingAnalytics()
        coordinator = make_coordinator(
            classifier=FailingClassifier(),
            metrics=metrics,
            analytics=analytics,
            config={"fallback_on_error": False},
        )

        with pytest.raises(WorkflowFailure) as exc_info:
            coordinator.process(simple_text, desktop)

        assert exc_info.value.stage == "classification"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert metrics.get_metrics()["failed_workflows"] == 1
        assert analytics.events == [("error", "workflow.classification")]
        assert coordinator.list_active_workflows() == []


class TestRetries:

    def test_retry_then_succeed(self, make_coordinator, store, simple_text, desktop):
        selector = FlakySelector(store)
        coordinator = make_coordinator(selector=selector, config={"max_retries": 1})

        result = coordinator.process(simple_text, desktop)

        assert result.fallback_used is False
        assert selector.calls == 2

        errors = [m for m in result.messages if m.kind == MessageKind.ERROR]
        assert len(errors) == 1
        assert errors[0].metadata.retry_count == 1

        response = [m for m in result.messages if m.sender == "strategy_selector"][-1]
        assert response.metadata.retry_count == 1

    def test_retries_exhausted(self, make_coordinator, store, simple_text, desktop):
        selector = FlakySelector(store)
        coordinator = make_coordinator(selector=selector, config={"max_retries": 0})

        result = coordinator.process(simple_text, desktop)

        assert result.fallback_used is True
        assert selector.calls == 1


class TestTimeout:

    def test_slow_delegate_times_out_and_is_cancelled(self, make_coordinator, simple_text, desktop):
        delegate = SlowDelegate()
        coordinator = make_coordinator(delegate=delegate, config={"timeout_seconds": 0.2})

        result = coordinator.process(simple_text, desktop, question="Anything?")

        assert result.fallback_used is True
        assert result.confidence == 0.3
        assert result.error.startswith("StageTimeout")
        assert "delegation" in result.error

        # the delegate observed cancellation and returned promptly
        assert delegate.returned.wait(2)
        assert delegate.cancel_event.is_set()

    @pytest.mark.parametrize(
        "collaborator,stage",
        [
            ({"classifier": SlowClassifier()}, "classification"),
            (None, "selection"),
        ],
    )
    def test_slow_stage_falls_back(self, make_coordinator, store, simple_text, desktop, collaborator, stage):
        collaborator = collaborator or {"selector": SlowSelector(store)}
        coordinator = make_coordinator(config={"timeout_seconds": 0.2}, **collaborator)

        result = coordinator.process(simple_text, desktop)

        assert result.fallback_used is True
        assert result.confidence == 0.3
        assert result.error.startswith("StageTimeout")
        assert stage in result.error
        assert store.get(f"error_pattern_{stage}_StageTimeout") is not MISSING


# ============================================================
# CONFIGURATION
# ============================================================

class TestConfig:

    def test_update_config(self, make_coordinator):
        coordinator = make_coordinator()

        config = coordinator.update_config(max_retries=5, log_level="warn")

        assert config.max_retries == 5
        assert coordinator.get_config().log_level == "warn"

        coordinator.update_config(log_level="info")

    def test_unknown_setting(self, make_coordinator):
        with pytest.raises(ValueError):
            make_coordinator().update_config(verbose=True)

    def test_invalid_value(self, make_coordinator):
        coordinator = make_coordinator()

        with pytest.raises(ValueError):
            coordinator.update_config(log_level="chatty")

        with pytest.raises(ValueError):
            coordinator.update_config(max_retries=-1)

        assert coordinator.get_config().max_retries == 0
