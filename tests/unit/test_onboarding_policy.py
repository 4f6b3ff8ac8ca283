from src.domain.services.onboarding_policy import OnboardingSignals


def test_complete_is_or_of_signals():
    assert OnboardingSignals(metadata=True, profile=False, preferences=False).complete
    assert OnboardingSignals(metadata=None, profile=None, preferences=True).complete
    assert not OnboardingSignals(metadata=False, profile=False, preferences=False).complete
    assert not OnboardingSignals().complete


def test_drift_only_lists_writable_false_signals():
    signals = OnboardingSignals(metadata=True, profile=False, preferences=False)
    assert signals.drifted() == ["profile"]


def test_unreadable_signal_is_not_drift():
    signals = OnboardingSignals(metadata=None, profile=False, preferences=True)
    assert signals.drifted() == ["profile"]


def test_no_drift_when_incomplete():
    assert OnboardingSignals(metadata=False, profile=False, preferences=False).drifted() == []
