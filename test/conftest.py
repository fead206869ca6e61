"""
Test configuration for Abacus tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from interpreter import create_interpreter
from stdlib import format_value


@pytest.fixture
def parser():
  """Provide a fresh parser for each test"""
  return create_parser()


@pytest.fixture
def run(parser):
  """Parse and evaluate source text, returning the printed values as text"""
  def run_source(text: str, interpreter=None):
    interpreter = interpreter or create_interpreter()
    program = parser.parse_string(text)
    return [format_value(value) for value in interpreter.run(program)]
  return run_source
