"""
Abacus Standard Library
Built-in math functions and constants for Abacus
Pure functional style using immutable dictionaries
"""

from typing import Any, Callable, Dict, List, Optional
from types import MappingProxyType
import math

import numpy as np

from ast_nodes import format_number
from utilities import (
  ARITHMETIC_OPERATORS,
  validate_function_args,
  type_mismatch_error,
  is_value_dict,
  to_float
)
from error_handling import AbacusTypeError

# Largest list range() will build
RANGE_LIMIT = 10_000_000

# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def make_value(value: Any, type_name: str = "Unknown") -> Dict:
  """Create an immutable runtime value"""
  return {
      'value': value,
      'type': type_name
  }


def make_number(value: float) -> Dict:
  return make_value(float(value), "Num")


def make_list(elements: List[Dict]) -> Dict:
  """Lists are fixed-size once built"""
  return make_value(tuple(elements), "List")


def is_value(binding: Optional[Dict]) -> bool:
  """True for Num and List bindings, False for functions"""
  return is_value_dict(binding) and binding['type'] in ("Num", "List")


# ============================================================================
# DISPLAY
# ============================================================================

def format_value(value: Dict) -> str:
  """Canonical text form: 11, 0.5, inf, NaN, [1, 2, 3]"""
  if value['type'] == "Num":
    return format_number(value['value'])
  elif value['type'] == "List":
    return "[" + ", ".join(format_value(elem) for elem in value['value']) + "]"
  elif value['type'] == "Function":
    return f"<function {value['name']}({', '.join(value['params'])})>"
  elif value['type'] == "Builtin":
    return f"<builtin {value['name']}{value['signature']}>"
  else:
    return f"<{value['type']}>"


# ============================================================================
# MATH FUNCTIONS
# ============================================================================

def unary_math(func: Callable[[float], Any], name: str) -> Callable[[Dict], Dict]:
  """Wrap a numpy ufunc as a built-in, mapped over lists element by element"""

  def apply(x: Dict) -> Dict:
    if x['type'] == "List":
      return make_list([apply(elem) for elem in x['value']])
    if x['type'] != "Num":
      raise type_mismatch_error(name, "argument 1", "Num", x)
    # Domain errors give NaN or inf
    with np.errstate(all='ignore'):
      return make_number(to_float(func(x['value'])))

  return apply


def abacus_pow(x: Dict, y: Dict) -> Dict:
  """pow(x, y), same as x ^ y"""
  return ARITHMETIC_OPERATORS['^'](x, y, make_value)


def abacus_atan2(y: Dict, x: Dict) -> Dict:
  """Angle of the point (x, y)"""
  validate_function_args("atan2", [y, x], ["Num", "Num"])
  with np.errstate(all='ignore'):
    return make_number(to_float(np.arctan2(y['value'], x['value'])))


# ============================================================================
# LIST FUNCTIONS
# ============================================================================

def abacus_len(lst: Dict) -> Dict:
  """Number of elements in a list"""
  validate_function_args("len", [lst], ["List"])
  return make_number(len(lst['value']))


def abacus_range(start: Dict, stop: Dict) -> Dict:
  """Numbers from start up to, not including, stop"""
  validate_function_args("range", [start, stop], ["Num", "Num"])
  first, last = start['value'], stop['value']
  if not (math.isfinite(first) and math.isfinite(last)):
    raise AbacusTypeError(
      f"range requires finite bounds, got {format_number(first)} and {format_number(last)}",
      name="range"
    )

  if first + 1.0 == first:
    raise AbacusTypeError(
      f"range start {format_number(first)} is too large to step by 1",
      name="range"
    )
  count = max(0, math.ceil(last - first))
  if count > RANGE_LIMIT:
    raise AbacusTypeError(
      f"range of {count} elements exceeds the limit of {RANGE_LIMIT}",
      name="range"
    )
  # Rounding in last - first can overshoot by one element
  return make_list([make_number(first + i) for i in range(count) if first + i < last])


# ============================================================================
# BUILT-IN REGISTRY
# ============================================================================

def make_builtin_function(name: str, func: Callable, arity: int, signature: str = "") -> Dict:
  """Create a built-in function value"""
  return {
      'type': 'Builtin',
      'name': name,
      'func': func,
      'arity': arity,
      'signature': signature
  }


UNARY_MATH = {
    "sin": np.sin,
    "cos": np.cos,
    "tan": np.tan,
    "asin": np.arcsin,
    "acos": np.arccos,
    "atan": np.arctan,
    "sqrt": np.sqrt,
    "abs": np.abs,
    "floor": np.floor,
    "ceil": np.ceil,
    "ln": np.log,
    "log": np.log10,
    "exp": np.exp,
}

BUILTIN_FUNCTIONS: Dict[str, Dict] = {
    name: make_builtin_function(name, unary_math(func, name), 1, "(x)")
    for name, func in UNARY_MATH.items()
}
BUILTIN_FUNCTIONS.update({
    "pow": make_builtin_function("pow", abacus_pow, 2, "(x, y)"),
    "atan2": make_builtin_function("atan2", abacus_atan2, 2, "(y, x)"),

    # List functions
    "len": make_builtin_function("len", abacus_len, 1, "(list)"),
    "range": make_builtin_function("range", abacus_range, 2, "(start, stop)"),
})

BUILTIN_CONSTANTS: Dict[str, Dict] = {
    "PI": make_number(np.pi),
    "TAU": make_number(2 * np.pi),
    "PHI": make_number((1 + np.sqrt(5)) / 2),
}

# Shared by every run, never mutated
BUILTINS = MappingProxyType({**BUILTIN_FUNCTIONS, **BUILTIN_CONSTANTS})


def list_builtin_names() -> List[str]:
  """List all available built-in names"""
  return list(BUILTINS.keys())


if __name__ == "__main__":
  print("Abacus Standard Library")
  print("=" * 30)
  for name, binding in BUILTINS.items():
    print(f"  {name}: {format_value(binding)}")
