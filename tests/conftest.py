"""
Pytest configuration for swarmdeck tests.
"""


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers", "requires_tmux: mark test as requiring a real tmux binary"
    )
