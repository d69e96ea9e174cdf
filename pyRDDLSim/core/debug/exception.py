import warnings

import termcolor

from pyRDDLSim.core.debug.decompiler import RDDLDecompiler
from pyRDDLSim.core.parser.expr import Expression

ERROR_MESSAGE_DECOMPILER = RDDLDecompiler()


def print_stack_trace(expr):
    if isinstance(expr, Expression):
        trace = ERROR_MESSAGE_DECOMPILER.decompile_expr(expr)
    else:
        trace = str(expr)
    return f'>> {trace}'


def print_stack_trace_root(expr, root):
    return print_stack_trace(expr) + '\n' + f'Please check expression for {root}.'


def raise_warning(message, color='yellow'):
    warnings.warn(termcolor.colored(message, color))


class RDDLBuildError(Exception):
    '''Base class of errors that can only be raised while compiling a domain
    and instance, before any trajectory is simulated.'''
    pass


class RDDLActionPreconditionNotSatisfiedError(ValueError):
    pass


class RDDLArithmeticError(ArithmeticError):
    pass


class RDDLConstraintNotSatisfiedError(ValueError):
    pass


class RDDLCyclicDependencyError(RDDLBuildError, SyntaxError):
    pass


class RDDLDivisionByZeroError(ZeroDivisionError):
    pass


class RDDLInstanceNotExistError(RDDLBuildError, ValueError):
    pass


class RDDLInvalidActionError(ValueError):
    pass


class RDDLInvalidDependencyInCPFError(RDDLBuildError, SyntaxError):
    pass


class RDDLInvalidNumberOfArgumentsError(SyntaxError):
    pass


class RDDLInvalidObjectError(SyntaxError):
    pass


class RDDLLevelViolationError(RDDLBuildError, SyntaxError):
    pass


class RDDLMissingCPFDefinitionError(RDDLBuildError, SyntaxError):
    pass


class RDDLNonExhaustiveDiscreteError(RDDLBuildError, SyntaxError):
    pass


class RDDLNonExhaustiveSwitchError(RDDLBuildError, SyntaxError):
    pass


class RDDLNotImplementedError(NotImplementedError):
    pass


class RDDLRepeatedVariableError(RDDLBuildError, SyntaxError):
    pass


class RDDLRequirementError(RDDLBuildError, SyntaxError):
    pass


class RDDLStateInvariantNotSatisfiedError(ValueError):
    pass


class RDDLTrajectoryTerminatedError(RuntimeError):
    pass


class RDDLTypeError(TypeError):
    pass


class RDDLUnboundParameterError(SyntaxError):
    pass


class RDDLUndeclaredGroundVariableError(RDDLBuildError, SyntaxError):
    pass


class RDDLUndefinedCPFError(RDDLBuildError, SyntaxError):
    pass


class RDDLUndefinedVariableError(SyntaxError):
    pass


class RDDLValueOutOfRangeError(ValueError):
    pass


class RDDLInvalidDistributionParameterError(RDDLValueOutOfRangeError):
    pass
