"""
Script to run the cost accounting test suite without pytest.
"""

import unittest
import sys
import os


def run_tests():
    """Run all tests in the test suite."""
    tests_dir = os.path.dirname(os.path.abspath(__file__))
    # conftest helpers are imported directly by the test modules
    sys.path.append(tests_dir)
    sys.path.append(os.path.abspath(os.path.join(tests_dir, '..', 'src')))

    test_loader = unittest.TestLoader()
    test_suite = test_loader.discover(tests_dir, pattern='test_*.py')

    test_runner = unittest.TextTestRunner(verbosity=2)
    result = test_runner.run(test_suite)

    # Return non-zero exit code if tests failed
    return 0 if result.wasSuccessful() else 1


if __name__ == '__main__':
    sys.exit(run_tests())
