"""Main entry point for the Barber Booking Platform."""

from barber_booking_platform.config import get_settings


def main():
    """Serve the API on the configured host and port."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "barber_booking_platform.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
