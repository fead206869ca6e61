"""
Abacus - Main Entry Point
A small expression language for numeric computation
"""

import sys
import os
import argparse
import atexit
import traceback
from typing import Dict, List, Optional

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from ast_nodes import format_program
from parsing import create_parser, KEYWORDS
from error_handling import AbacusError, ErrorHandler
from interpreter import create_interpreter, AbacusInterpreter, Environment
from stdlib import format_value, list_builtin_names


VERSION = "Abacus v0.3.0"
PROMPT = "abacus> "
CONTINUATION_PROMPT = "   ...> "


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='abacus',
      description='Abacus - a small expression language for numeric computation',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.abacus            # Run an Abacus script
  %(prog)s -i                       # Interactive mode
  %(prog)s -i script.abacus         # Run a script, then continue interactively
  %(prog)s --tokens script.abacus   # Show the token stream
  %(prog)s --parse script.abacus    # Show the parsed program
  %(prog)s --debug script.abacus    # Run with debug output
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='Abacus script file to execute'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize file and show the tokens (for debugging)'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the program in canonical form'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Enable debug output for all stages'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=VERSION
  )

  return parser


def read_source(script_path: str) -> str:
  """Read a script, exiting with a hint when the file cannot be read"""
  try:
    with open(script_path, 'r', encoding='utf-8') as f:
      return f.read()
  except FileNotFoundError:
    print(f"Error: Script file '{script_path}' not found")
    print(f"  Hint: Check the file path and make sure the file exists")
    sys.exit(1)
  except IsADirectoryError:
    print(f"Error: '{script_path}' is a directory")
    print(f"  Hint: Pass the path of an .abacus file")
    sys.exit(1)
  except PermissionError:
    print(f"Error: Permission denied reading '{script_path}'")
    print(f"  Hint: Make sure you have read permissions for this file")
    sys.exit(1)
  except UnicodeDecodeError as e:
    print(f"Error: Cannot decode file '{script_path}': {e}")
    print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
    sys.exit(1)


def known_names(env: Optional[Environment]) -> List[str]:
  names = list_builtin_names()
  if env is not None:
    names.extend(env.user_bindings())
  return names


def report_error(error: AbacusError, source: str, filename: str,
                 env: Optional[Environment] = None) -> None:
  """Print one diagnostic with source context"""
  handler = ErrorHandler(source, filename)
  print(handler.format(error, known_names(env)), end='', file=sys.stderr)


def report_unexpected(error: Exception, filename: str, debug: bool) -> None:
  if isinstance(error, RecursionError):
    print(f"{filename}: RuntimeError: maximum recursion depth exceeded", file=sys.stderr)
    print("  hint: a function probably calls itself without end", file=sys.stderr)
    return
  print(f"Unexpected error while processing '{filename}': {error}", file=sys.stderr)
  if debug:
    traceback.print_exc()


def print_value(value: Dict) -> None:
  print(format_value(value))


def show_tokens(script_path: str, debug: bool = False) -> None:
  """Tokenize a script file and show one token per line"""
  source = read_source(script_path)
  parser = create_parser(debug)

  try:
    for token in parser.tokenize(source, script_path):
      print(f"{token.span.start_line}:{token.span.start_col}\t{token}")
  except AbacusError as e:
    report_error(e, source, script_path)
    sys.exit(1)


def parse_file(script_path: str, debug: bool = False) -> None:
  """Parse an Abacus script file and show it in canonical form"""
  source = read_source(script_path)
  parser = create_parser(debug)

  try:
    program = parser.parse_string(source, script_path)
  except AbacusError as e:
    report_error(e, source, script_path)
    sys.exit(1)

  if debug:
    print(f"Parsed {len(program)} top-level statements")
  print(format_program(program), end='')


def run_script_file(script_path: str, debug: bool = False) -> AbacusInterpreter:
  """Run an Abacus script file, printing each value as it is produced"""
  source = read_source(script_path)
  parser = create_parser(debug)
  interpreter = create_interpreter(debug, on_print=print_value)

  try:
    program = parser.parse_string(source, script_path)
    if debug:
      print(f"Parsed {len(program)} statements")
    interpreter.run(program)
  except AbacusError as e:
    report_error(e, source, script_path, interpreter.environment)
    sys.exit(1)
  except Exception as e:
    report_unexpected(e, script_path, debug)
    sys.exit(1)

  return interpreter


# ============================================================================
# INTERACTIVE MODE
# ============================================================================

def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.abacus_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First run, no history yet

  readline.set_history_length(1000)

  completions = list(KEYWORDS) + list_builtin_names() + [":parse", ":env", ":help", "exit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  def save_history():
    try:
      readline.write_history_file(history_file)
    except OSError:
      pass  # Read-only home directory

  atexit.register(save_history)


def open_braces(code: str) -> int:
  """Number of '{' still waiting for their '}'"""
  depth = 0
  for line in code.split('\n'):
    line = line.split('#', 1)[0]
    depth += line.count('{') - line.count('}')
  return depth


def read_chunk() -> str:
  """Read one line, or several while a block is still open"""
  code = input(PROMPT)
  while open_braces(code) > 0:
    code += "\n" + input(CONTINUATION_PROMPT)
  return code


def show_environment(env: Environment) -> None:
  print("Current environment:")
  bindings = env.user_bindings()
  if not bindings:
    print("  (no user-defined bindings)")
  for name, binding in bindings.items():
    val_str = format_value(binding)
    if len(val_str) > 60:
      val_str = val_str[:57] + "..."
    print(f"  {name} = {val_str}")


def show_help() -> None:
  print("REPL Commands:")
  print("  :parse <code>     - Show parsed program")
  print("  :env              - Show current environment")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  x = 2 * 5 + 1                    - Variable")
  print("  f(x) = x * 2                     - Function definition")
  print("  [a, b] = [1, 2]                  - Destructuring")
  print("  from 0 to 10 as i with step 2 { i }")
  print("  for y in [1, 2, 3] { y ^ 2 }")
  print("  sin(PI / 2), sqrt([4, 9]), len(range(0, 5))")


def run_interactive_mode(debug: bool = False, interpreter: Optional[AbacusInterpreter] = None) -> None:
  """Run Abacus in interactive mode against one persistent environment"""
  print(f"{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  parser = create_parser(debug)
  if interpreter is None:
    interpreter = create_interpreter(debug, on_print=print_value)

  while True:
    try:
      code = read_chunk()
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    command = code.strip()
    if command in ("exit", "exit."):
      break
    if not command:
      continue

    if command == ":env":
      show_environment(interpreter.environment)
      continue
    if command == ":help":
      show_help()
      continue

    try:
      if command.startswith(":parse "):
        print(format_program(parser.parse_string(command[len(":parse "):])), end='')
      else:
        interpreter.run(parser.parse_string(code))
    except AbacusError as e:
      report_error(e, code, "<input>", interpreter.environment)
    except KeyboardInterrupt:
      print("\nInterrupted")
    except Exception as e:
      report_unexpected(e, "<input>", debug)


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for Abacus"""
  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  if args.script:
    if args.tokens:
      show_tokens(args.script, debug=args.debug)
    elif args.parse:
      parse_file(args.script, debug=args.debug)
    else:
      interpreter = run_script_file(args.script, debug=args.debug)
      if args.interactive:
        run_interactive_mode(debug=args.debug, interpreter=interpreter)

  elif args.tokens or args.parse:
    arg_parser.error("--tokens and --parse need a script file")

  else:
    run_interactive_mode(debug=args.debug)


if __name__ == "__main__":
  main()
