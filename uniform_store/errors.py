class CartValidationError(ValueError):
    """Rejected input; raised before any cart state is touched."""


class EmptyCartError(CartValidationError):
    pass


class CartPersistenceError(RuntimeError):
    """The storage collaborator failed to load or save a cart."""


class QuoteRenderError(RuntimeError):
    """A quote page could not be rasterized or the document assembled."""

    def __init__(self, message: str, page_number: int | None = None) -> None:
        super().__init__(message)
        self.page_number = page_number


class QuoteStorageError(RuntimeError):
    """The quote file was written but its lead or order could not be recorded."""
