"""Allow running as python -m np_detector."""

from .main import main

main()
