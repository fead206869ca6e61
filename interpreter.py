"""
Abacus Interpreter - Tree Walking Evaluator
Statements run in order against one Environment of scope frames
Values and bindings are immutable dictionaries, printing is a callback
"""

from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from contextlib import contextmanager
from types import MappingProxyType
import math

from ast_nodes import (
  Literal, Variable, BinaryOp, Call, ListLiteral,
  Assignment, FunctionDef, ExpressionStatement, FromToAsLoop, ForInLoop, Destructuring,
  Program, Expression, Statement
)
from error_handling import (
  AbacusRuntimeError,
  AbacusNameError,
  AbacusTypeError,
  AbacusLoopError
)
from utilities import ARITHMETIC_OPERATORS, arity_error, type_mismatch_error
from stdlib import BUILTINS, make_value, make_number, make_list, is_value, format_value


DEFAULT_STEP = 1.0


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_function(name: str, params: Tuple[str, ...], body: Expression) -> Dict:
  """Create a user function binding, the body is evaluated at each call"""
  return {
      'type': 'Function',
      'name': name,
      'params': params,
      'body': body
  }


def make_frame(kind: str, bindings: Optional[Dict] = None) -> Dict:
  """Scope frame: 'global', 'loop' or 'call'"""
  return {
      'kind': kind,
      'bindings': dict(bindings or {})
  }


def make_execution_context(on_print: Optional[Callable[[Dict], Any]] = None) -> Dict:
  """Per-run state: printed values in order and the print callback"""
  return {
      'output': [],
      'on_print': on_print
  }


# ============================================================================
# ENVIRONMENT
# ============================================================================

class Environment:
  """Stack of scope frames over the read-only built-in table

  The global frame is always at the bottom. Loop frames hold only their loop
  variable; any other name written inside a loop lands in the nearest frame
  below that is not a loop frame. Only the innermost call frame is visible,
  so a function never sees its caller's parameters.
  """

  def __init__(self, builtins: MappingProxyType = BUILTINS):
    self.builtins = builtins
    self.frames: List[Dict] = [make_frame('global')]

  def visible_frames(self) -> Iterator[Dict]:
    """Frames searched by lookup, innermost first"""
    seen_call = False
    for frame in reversed(self.frames):
      if frame['kind'] == 'call':
        if seen_call:
          continue
        seen_call = True
      yield frame

  def lookup(self, name: str) -> Optional[Dict]:
    for frame in self.visible_frames():
      if name in frame['bindings']:
        return frame['bindings'][name]
    return self.builtins.get(name)

  def _target_frame(self, name: str) -> Dict:
    for frame in reversed(self.frames):
      if frame['kind'] != 'loop' or name in frame['bindings']:
        return frame
    return self.frames[0]

  def define(self, name: str, binding: Dict):
    self._target_frame(name)['bindings'][name] = binding

  def push_scope(self, bindings: Optional[Dict] = None, kind: str = 'loop') -> Dict:
    frame = make_frame(kind, bindings)
    self.frames.append(frame)
    return frame

  def pop_scope(self) -> Dict:
    if len(self.frames) == 1:
      raise AbacusRuntimeError("cannot pop the global scope")
    return self.frames.pop()

  @contextmanager
  def scope(self, kind: str = 'loop', bindings: Optional[Dict] = None) -> Iterator[Dict]:
    frame = self.push_scope(bindings, kind)
    try:
      yield frame
    finally:
      self.pop_scope()

  @property
  def depth(self) -> int:
    return len(self.frames)

  def user_bindings(self) -> Dict[str, Dict]:
    """Global user definitions, in definition order"""
    return dict(self.frames[0]['bindings'])


# ============================================================================
# EXPRESSION EVALUATION
# ============================================================================

def eval_expression(expr: Expression, env: Environment, debug: bool = False,
                    context: Optional[Dict] = None) -> Dict:
  """Evaluate an expression node to a Num or List value"""
  if context is None:
    context = make_execution_context()

  try:
    if isinstance(expr, Literal):
      return eval_literal(expr, env, debug, context)
    elif isinstance(expr, Variable):
      return eval_variable(expr, env, debug, context)
    elif isinstance(expr, BinaryOp):
      return eval_binary_op(expr, env, debug, context)
    elif isinstance(expr, Call):
      return eval_call(expr, env, debug, context)
    elif isinstance(expr, ListLiteral):
      return eval_list_literal(expr, env, debug, context)
    else:
      raise AbacusRuntimeError(f"unknown expression node {type(expr).__name__}")
  except AbacusRuntimeError as e:
    if e.span is None:
      e.span = expr.span
    raise


def eval_literal(expr: Literal, env: Environment, debug: bool, context: Dict) -> Dict:
  return make_number(expr.value)


def eval_variable(expr: Variable, env: Environment, debug: bool, context: Dict) -> Dict:
  """Evaluate identifier by looking up in environment"""
  binding = env.lookup(expr.name)

  if binding is None:
    raise AbacusNameError(expr.name, expr.span)
  if not is_value(binding):
    raise AbacusTypeError(
      f"'{expr.name}' is a function, call it as {expr.name}(...)", expr.span, expr.name
    )

  return binding


def eval_binary_op(expr: BinaryOp, env: Environment, debug: bool, context: Dict) -> Dict:
  left = eval_expression(expr.left, env, debug, context)
  right = eval_expression(expr.right, env, debug, context)
  return ARITHMETIC_OPERATORS[expr.op](left, right, make_value)


def eval_list_literal(expr: ListLiteral, env: Environment, debug: bool, context: Dict) -> Dict:
  return make_list([eval_expression(elem, env, debug, context) for elem in expr.elements])


def eval_call(expr: Call, env: Environment, debug: bool, context: Dict) -> Dict:
  """Evaluate function application"""
  binding = env.lookup(expr.name)

  if binding is None:
    raise AbacusNameError(expr.name, expr.span, what="function")
  if is_value(binding):
    raise AbacusTypeError(
      f"'{expr.name}' is a {binding['type']} value and cannot be called", expr.span, expr.name
    )

  args = [eval_expression(arg, env, debug, context) for arg in expr.args]

  if debug:
    print(f"[debug] call {expr.name}({', '.join(format_value(a) for a in args)})")

  if binding['type'] == 'Builtin':
    return call_builtin(binding, args)
  return call_function(binding, args, env, debug, context)


def call_builtin(builtin: Dict, args: List[Dict]) -> Dict:
  if len(args) != builtin['arity']:
    raise arity_error(builtin['name'], builtin['arity'], len(args))
  return builtin['func'](*args)


def call_function(function: Dict, args: List[Dict], env: Environment, debug: bool, context: Dict) -> Dict:
  """Bind parameters in a fresh call frame and evaluate the body"""
  params = function['params']
  if len(args) != len(params):
    raise arity_error(function['name'], len(params), len(args))

  # zip into a dict: a repeated parameter name keeps the later argument
  with env.scope('call', dict(zip(params, args))):
    return eval_expression(function['body'], env, debug, context)


# ============================================================================
# STATEMENT EXECUTION
# ============================================================================

def execute_statement(stmt: Statement, env: Environment, debug: bool = False,
                      context: Optional[Dict] = None) -> None:
  """Execute one statement, tagging runtime errors with the statement kind"""
  if context is None:
    context = make_execution_context()

  if debug:
    print(f"[debug] executing {type(stmt).__name__} at {stmt.span}")

  try:
    if isinstance(stmt, Assignment):
      exec_assignment(stmt, env, debug, context)
    elif isinstance(stmt, FunctionDef):
      exec_function_def(stmt, env, debug, context)
    elif isinstance(stmt, ExpressionStatement):
      exec_expression_statement(stmt, env, debug, context)
    elif isinstance(stmt, FromToAsLoop):
      exec_from_to_loop(stmt, env, debug, context)
    elif isinstance(stmt, ForInLoop):
      exec_for_in_loop(stmt, env, debug, context)
    elif isinstance(stmt, Destructuring):
      exec_destructuring(stmt, env, debug, context)
    else:
      raise AbacusRuntimeError(f"unknown statement node {type(stmt).__name__}")
  except AbacusRuntimeError as e:
    # Innermost statement wins
    if e.statement is None:
      e.statement = type(stmt).__name__
    if e.span is None:
      e.span = stmt.span
    raise


def execute_block(body: Tuple[Statement, ...], env: Environment, debug: bool, context: Dict) -> None:
  for stmt in body:
    execute_statement(stmt, env, debug, context)


def bind(name: str, binding: Dict, env: Environment, debug: bool) -> None:
  if debug:
    print(f"[debug] bind {name} = {format_value(binding)}")
  env.define(name, binding)


def exec_assignment(stmt: Assignment, env: Environment, debug: bool, context: Dict) -> None:
  value = eval_expression(stmt.value, env, debug, context)
  bind(stmt.name, value, env, debug)


def exec_function_def(stmt: FunctionDef, env: Environment, debug: bool, context: Dict) -> None:
  bind(stmt.name, make_function(stmt.name, stmt.params, stmt.body), env, debug)


def emit(value: Dict, context: Dict) -> None:
  context['output'].append(value)
  if context['on_print'] is not None:
    context['on_print'](value)


def exec_expression_statement(stmt: ExpressionStatement, env: Environment, debug: bool, context: Dict) -> None:
  emit(eval_expression(stmt.expression, env, debug, context), context)


def eval_loop_bound(expr: Expression, role: str, env: Environment, debug: bool, context: Dict) -> float:
  value = eval_expression(expr, env, debug, context)
  if value['type'] != 'Num':
    error = type_mismatch_error("from loop", role, "Num", value)
    error.span = expr.span
    raise error
  return value['value']


def loop_values(start: float, stop: float, step: float) -> Iterator[float]:
  """start, start + step, start + 2*step, ... strictly before stop"""
  index = 0
  while True:
    # Multiply rather than accumulate so float steps do not drift
    current = start if index == 0 else start + index * step
    if not (current < stop if step > 0 else current > stop):
      return
    yield current
    index += 1


def exec_from_to_loop(stmt: FromToAsLoop, env: Environment, debug: bool, context: Dict) -> None:
  start = eval_loop_bound(stmt.start, "start", env, debug, context)
  stop = eval_loop_bound(stmt.stop, "stop", env, debug, context)
  if stmt.step is None:
    step = DEFAULT_STEP
  else:
    step = eval_loop_bound(stmt.step, "step", env, debug, context)

  if step == 0 or math.isnan(step):
    raise AbacusLoopError(
      f"loop step must be a non-zero number, got {format_value(make_number(step))}",
      stmt.step.span if stmt.step is not None else stmt.span,
      stmt.var
    )

  for current in loop_values(start, stop, step):
    with env.scope('loop', {stmt.var: make_number(current)}):
      execute_block(stmt.body, env, debug, context)


def exec_for_in_loop(stmt: ForInLoop, env: Environment, debug: bool, context: Dict) -> None:
  source = eval_expression(stmt.source, env, debug, context)
  if source['type'] != 'List':
    raise AbacusTypeError(
      f"for loop needs a List to iterate over, got {source['type']}", stmt.source.span, stmt.var
    )

  for element in source['value']:
    with env.scope('loop', {stmt.var: element}):
      execute_block(stmt.body, env, debug, context)


def exec_destructuring(stmt: Destructuring, env: Environment, debug: bool, context: Dict) -> None:
  value = eval_expression(stmt.value, env, debug, context)
  if value['type'] != 'List':
    raise AbacusTypeError(f"cannot destructure a {value['type']} value", stmt.value.span)
  if len(value['value']) != len(stmt.names):
    raise AbacusTypeError(
      f"cannot destructure a List of {len(value['value'])} elements into {len(stmt.names)} names",
      stmt.value.span
    )

  for name, element in zip(stmt.names, value['value']):
    bind(name, element, env, debug)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(program: Program, env: Optional[Environment] = None, debug: bool = False,
                 on_print: Optional[Callable[[Dict], Any]] = None) -> Tuple[List[Dict], Environment]:
  """
  Run every statement in order.
  Returns (printed values, environment); the first error aborts the run.
  """
  if env is None:
    env = Environment()
  context = make_execution_context(on_print)

  for stmt in program.statements:
    execute_statement(stmt, env, debug, context)

  return context['output'], env


class AbacusInterpreter:
  """Evaluator holding one persistent Environment across runs"""

  def __init__(self, debug: bool = False, on_print: Optional[Callable[[Dict], Any]] = None):
    self.debug = debug
    self.on_print = on_print
    self.environment = Environment()

  def run(self, program: Program) -> List[Dict]:
    output, _ = eval_program(program, self.environment, self.debug, self.on_print)
    return output

  def reset(self):
    self.environment = Environment()


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

def create_interpreter(debug: bool = False, on_print: Optional[Callable[[Dict], Any]] = None) -> AbacusInterpreter:
  """Factory function returning an interpreter"""
  return AbacusInterpreter(debug=debug, on_print=on_print)


def create_debug_interpreter() -> AbacusInterpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True)
