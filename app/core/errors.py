class WorkOrderNotFoundError(LookupError):
    pass


class WorkOrderLockedError(ValueError):
    """Raised for any write against a work order that is already aggregated."""

    def __init__(self, work_order_id: int):
        super().__init__("Work order is already finalized")
        self.work_order_id = work_order_id


class InvalidStatusTransitionError(ValueError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Status transition not allowed: {current} -> {requested}")
        self.current = current
        self.requested = requested


class CommentNotFoundError(LookupError):
    pass


class CommentPermissionError(PermissionError):
    pass


class EditSessionStateError(ValueError):
    pass


class NothingToSaveError(ValueError):
    def __init__(self):
        super().__init__("No changes to save")
