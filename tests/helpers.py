from entitlement_client.models import ValidationResult


def make_result(valid: bool = True, **overrides) -> ValidationResult:
    fields = {
        "valid": valid,
        "expiryDaysLeft": 30 if valid else 0,
        "activeGracePeriod": False,
        "isTrial": False,
    }
    fields.update(overrides)
    return ValidationResult(**fields)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
