"""Error kinds raised by the charging core.

Every error is recoverable: the API layer reports it and the caller may retry.
"""


class DashboardError(Exception):
    pass


class StationUnavailable(DashboardError):
    def __init__(self, station_id: str, status: str | None = None):
        self.station_id = station_id
        self.status = status
        if status is None:
            msg = f"Station '{station_id}' not found"
        else:
            msg = f"Station '{station_id}' not available for charging (status={status})"
        super().__init__(msg)


class SessionAlreadyActive(DashboardError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Charging session already in progress: {session_id}")


class NoActiveSession(DashboardError):
    def __init__(self, session_id: str | None = None):
        self.session_id = session_id
        if session_id is None:
            super().__init__("No active charging session")
        else:
            super().__init__(f"No active charging session with id {session_id}")


class SessionNotTerminal(DashboardError):
    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is {status}; only finished sessions can be invoiced")


class InsufficientBalance(DashboardError):
    def __init__(self, user_id: str, balance: float, required: float):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(
            f"Wallet balance {balance:.2f} for user {user_id} is below the required {required:.2f}"
        )


class InvalidTopUpAmount(DashboardError):
    pass


class PaymentFailed(DashboardError):
    pass


class EmailDeliveryFailed(DashboardError):
    pass


class InvalidCredentials(DashboardError):
    pass


class UnknownUser(DashboardError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Unknown user '{user_id}'")
