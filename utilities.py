"""
Utilities module for the Abacus interpreter
Error builders, argument validation and arithmetic factories shared by the
standard library and the evaluator
"""

from typing import Any, Callable, Dict, List

import numpy as np

from error_handling import AbacusArityError, AbacusTypeError


# ==================== TYPE CHECKING UTILITIES ====================

def is_value_dict(val: Any) -> bool:
  """
  Check if value is a wrapped value dict

  Args:
    val: Value to check

  Returns:
    True if val is a dict with 'type' and 'value' keys
  """
  return isinstance(val, dict) and 'type' in val and 'value' in val


def to_float(result: Any) -> float:
  """numpy scalars back to plain Python floats"""
  return float(result)


# ==================== ERROR MESSAGE BUILDERS ====================

def type_mismatch_error(
  func_name: str,
  param_name: str,
  expected: str,
  actual: Dict
) -> AbacusTypeError:
  """
  Generate type mismatch error

  Args:
    func_name: Function name
    param_name: Parameter name
    expected: Expected type
    actual: Actual value dict

  Returns:
    AbacusTypeError with formatted message
  """
  actual_type = actual.get('type', 'Unknown')
  return AbacusTypeError(
    f"{func_name} requires {expected} for {param_name}, got {actual_type}",
    name=func_name
  )


def arity_error(func_name: str, expected: int, got: int) -> AbacusArityError:
  """
  Generate arity mismatch error

  Args:
    func_name: Function name
    expected: Expected number of arguments
    got: Actual number of arguments

  Returns:
    AbacusArityError with formatted message
  """
  return AbacusArityError(func_name, expected, got)


def operation_error(op: str, left_type: str, right_type: str) -> AbacusTypeError:
  """
  Generate operation error

  Args:
    op: Operator symbol
    left_type: Left operand type
    right_type: Right operand type

  Returns:
    AbacusTypeError with formatted message
  """
  return AbacusTypeError(
    f"operator '{op}' is not defined for {left_type} and {right_type}",
    name=op
  )


# ==================== VALIDATION UTILITIES ====================

def validate_function_args(
  func_name: str,
  args: List[Dict],
  expected_types: List[str]
) -> None:
  """
  Validate function arguments match expected types

  Args:
    func_name: Function name for error messages
    args: List of argument values
    expected_types: List of expected type names, 'Any' accepts everything

  Raises:
    AbacusArityError or AbacusTypeError if validation fails
  """
  if len(args) != len(expected_types):
    raise arity_error(func_name, len(expected_types), len(args))

  for i, (arg, expected) in enumerate(zip(args, expected_types)):
    if expected != 'Any' and arg.get('type', 'Unknown') != expected:
      raise type_mismatch_error(func_name, f"argument {i+1}", expected, arg)


# ==================== BINARY OPERATION FACTORIES ====================

def binary_arithmetic_op(
  op: Callable[[float, float], Any],
  symbol: str
) -> Callable[[Dict, Dict, Callable], Dict]:
  """
  Factory for binary arithmetic operations

  Args:
    op: numpy ufunc (e.g., np.add)
    symbol: Operator symbol for error messages

  Returns:
    Function that performs the arithmetic operation on two Num values

  Examples:
    abacus_add = binary_arithmetic_op(np.add, "+")
    result = abacus_add({"type": "Num", "value": 1.0}, {"type": "Num", "value": 2.0}, make_value)
  """

  def arithmetic(x: Dict, y: Dict, make_value: Callable) -> Dict:
    if x['type'] != 'Num' or y['type'] != 'Num':
      raise operation_error(symbol, x['type'], y['type'])
    # IEEE results (inf, nan) instead of warnings
    with np.errstate(all='ignore'):
      result = op(x['value'], y['value'])
    return make_value(to_float(result), 'Num')

  return arithmetic


ARITHMETIC_OPERATORS = {
  '+': binary_arithmetic_op(np.add, '+'),
  '-': binary_arithmetic_op(np.subtract, '-'),
  '*': binary_arithmetic_op(np.multiply, '*'),
  '/': binary_arithmetic_op(np.divide, '/'),
  '^': binary_arithmetic_op(np.power, '^'),
}
