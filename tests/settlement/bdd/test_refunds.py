"""BDD tests for refunds."""

from pytest_bdd import given, scenarios

scenarios("features/refunds.feature")


@given("the card terminal cannot refund")
def terminal_cannot_refund(terminal):
    terminal.configure(refund_succeeds=False, failure_reason="Refund window closed")
