from dealdesk.models.negotiation import NegotiationState, OfferScenario

HIGH_RISK_MARKERS = ("LOW", "Below fair")


class InvalidTransitionError(Exception):
    """Raised when a negotiation is asked to move to a state it cannot reach."""
    def __init__(self, current: NegotiationState, action: str):
        self.current = current
        self.action = action
        super().__init__(f"Cannot {action} a negotiation in state '{current.value}'")


def collect_risk_flags(offers: list[OfferScenario]) -> list[str]:
    """All offer risk flags, de-duplicated in first-seen order."""
    flags: list[str] = []
    for offer in offers:
        for flag in offer.risk_flags:
            if flag not in flags:
                flags.append(flag)
    return flags


def requires_approval(risk_flags: list[str]) -> bool:
    return any(marker in flag for flag in risk_flags for marker in HIGH_RISK_MARKERS)


def state_after_generation(current: NegotiationState, risk_flags: list[str]) -> NegotiationState:
    if current is NegotiationState.ARCHIVED:
        raise InvalidTransitionError(current, "generate a revision for")
    if requires_approval(risk_flags):
        return NegotiationState.PENDING_APPROVAL
    return NegotiationState.DRAFT


def state_after_update(current: NegotiationState) -> NegotiationState:
    if current is NegotiationState.ARCHIVED:
        raise InvalidTransitionError(current, "update")
    return NegotiationState.DRAFT


def state_after_decision(current: NegotiationState, approved: bool) -> NegotiationState:
    if current is not NegotiationState.PENDING_APPROVAL:
        raise InvalidTransitionError(current, "approve" if approved else "reject")
    return NegotiationState.APPROVED if approved else NegotiationState.DRAFT


def state_after_archive(current: NegotiationState) -> NegotiationState:
    if current is NegotiationState.ARCHIVED:
        raise InvalidTransitionError(current, "archive")
    return NegotiationState.ARCHIVED
