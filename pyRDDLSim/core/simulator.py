import numpy as np
from typing import Dict, List, Optional, TYPE_CHECKING

from pyRDDLSim.core.compiler.model import RDDLPlanningModel
from pyRDDLSim.core.debug.exception import print_stack_trace
from pyRDDLSim.core.debug.exception import (
    RDDLArithmeticError,
    RDDLDivisionByZeroError,
    RDDLInvalidObjectError,
    RDDLNotImplementedError,
    RDDLTypeError,
    RDDLUnboundParameterError,
    RDDLUndefinedVariableError,
    RDDLValueOutOfRangeError
)
from pyRDDLSim.core.distributions import RDDLDistributionSampler
from pyRDDLSim.core.parser.expr import Expression

if TYPE_CHECKING:
    from pyRDDLSim.core.compiler.initializer import RDDLValueInitializer
    from pyRDDLSim.core.compiler.tracer import RDDLTracedObjects
    from pyRDDLSim.core.grounder import RDDLGroundCPF


class RDDLSimulator:
    '''Evaluates RDDL expressions against an environment of ground values.
    Values are plain Python bools, ints, floats, and strings for enum labels
    and objects. Expressions outside the traced domain are traced on their
    first evaluation.
    '''

    UNARY = {
        'abs': np.abs,
        'sgn': np.sign,
        'round': lambda x: np.floor(x + 0.5),
        'floor': np.floor,
        'ceil': np.ceil,
        'cos': np.cos,
        'sin': np.sin,
        'tan': np.tan,
        'acos': np.arccos,
        'asin': np.arcsin,
        'atan': np.arctan,
        'cosh': np.cosh,
        'sinh': np.sinh,
        'tanh': np.tanh,
        'exp': np.exp,
        'ln': np.log,
        'sqrt': np.sqrt
    }

    BINARY = {
        'div': np.floor_divide,
        'mod': np.mod,
        'fmod': np.fmod,
        'min': np.minimum,
        'max': np.maximum,
        'pow': np.power,
        'log': lambda x, b: np.log(x) / np.log(b),
        'hypot': np.hypot
    }

    # functions whose result is always integer, and those preserving int args
    INTEGER_VALUED = {'round', 'floor', 'ceil'}
    INTEGER_PRESERVING = {'abs', 'sgn', 'div', 'mod', 'min', 'max'}

    def __init__(self, rddl: RDDLPlanningModel,
                 traced: 'RDDLTracedObjects',
                 plan: List['RDDLGroundCPF'],
                 initializer: 'RDDLValueInitializer',
                 sampler: RDDLDistributionSampler) -> None:
        '''Creates a new expression evaluator.

        :param rddl: the RDDL model whose expressions are evaluated
        :param traced: the cached information of the traced expressions
        :param plan: the ground evaluation plan of the CPFs
        :param initializer: casts CPF results to their ranges
        :param sampler: draws samples from distributions
        '''
        self.rddl = rddl
        self.traced = traced
        self.plan = plan
        self.initializer = initializer
        self.sampler = sampler

    # ===========================================================================
    # main sampling routines
    # ===========================================================================

    def evaluate(self, expr: Expression, subs: Dict[str, object],
                 objects: Optional[Dict[str, str]]=None) -> object:
        '''Evaluates an expression.

        :param expr: the expression to evaluate
        :param subs: the ground values of all variables readable by expr
        :param objects: binding of free parameters (e.g. ?x) to objects
        '''
        if objects is None:
            objects = {}
        if not self.traced.is_traced(expr):
            for (name, obj) in objects.items():
                if obj not in self.rddl.object_to_type:
                    raise RDDLInvalidObjectError(
                        f'Parameter <{name}> is bound to <{obj}>, which is not '
                        f'an object of any type.')
            scope = {name: self.rddl.object_to_type[obj]
                     for (name, obj) in objects.items()}
            self.traced.trace_expression(expr, scope)
        return self._sample(expr, subs, objects)

    def sample_cpfs(self, subs: Dict[str, object]) -> Dict[str, object]:
        '''Evaluates the ground CPFs in stratified order, storing each result,
        cast to the range of its variable, in subs. Returns the new values.'''
        cast = self.initializer.cast
        updates = {}
        for entry in self.plan:
            value = self._sample(entry.expr, subs, entry.objects)
            value = cast(value, entry.prange, entry.name)
            subs[entry.name] = updates[entry.name] = value
        return updates

    def _sample(self, expr, subs, objects):
        etype, _ = expr.etype
        if etype == 'constant':
            return expr.args
        elif etype == 'pvar':
            return self._sample_pvar(expr, subs, objects)
        elif etype == 'arithmetic':
            return self._sample_arithmetic(expr, subs, objects)
        elif etype == 'relational':
            return self._sample_relational(expr, subs, objects)
        elif etype == 'boolean':
            return self._sample_logical(expr, subs, objects)
        elif etype == 'aggregation':
            return self._sample_aggregation(expr, subs, objects)
        elif etype == 'func':
            return self._sample_func(expr, subs, objects)
        elif etype == 'control':
            return self._sample_control(expr, subs, objects)
        elif etype == 'randomvar':
            return self._sample_random(expr, subs, objects)
        else:
            raise RDDLNotImplementedError(
                f'Internal error: expression type {etype} is not supported.\n' +
                print_stack_trace(expr))

    # ===========================================================================
    # type checking
    # ===========================================================================

    @staticmethod
    def _check_bool(value, msg, expr):
        if not isinstance(value, (bool, np.bool_)):
            raise RDDLTypeError(
                f'{msg} must evaluate to bool, got {value!r} of type '
                f'{type(value).__name__}.\n' + print_stack_trace(expr))
        return bool(value)

    @staticmethod
    def _check_numeric(value, msg, expr):
        if isinstance(value, (bool, np.bool_)):
            return int(value)
        elif isinstance(value, (int, float)):
            return value
        elif isinstance(value, np.integer):
            return int(value)
        elif isinstance(value, np.floating):
            return float(value)
        raise RDDLTypeError(
            f'{msg} must evaluate to a number, got {value!r} of type '
            f'{type(value).__name__}.\n' + print_stack_trace(expr))

    @staticmethod
    def _to_python(value):
        if isinstance(value, np.bool_):
            return bool(value)
        elif isinstance(value, np.integer):
            return int(value)
        elif isinstance(value, np.floating):
            return float(value)
        return value

    # ===========================================================================
    # leaves
    # ===========================================================================

    def _resolve_object(self, arg, subs, objects, expr):
        if isinstance(arg, Expression):
            arg = self._sample(arg, subs, objects)
        if not isinstance(arg, str):
            raise RDDLTypeError(
                f'Argument {arg!r} must evaluate to an object.\n' +
                print_stack_trace(expr))
        if RDDLPlanningModel.is_free_object(arg):
            obj = objects.get(arg, None)
            if obj is None:
                raise RDDLUnboundParameterError(
                    f'Parameter <{arg}> is not bound, parameters in scope '
                    f'are {set(objects.keys())}.\n' + print_stack_trace(expr))
            return obj
        return arg

    def _sample_pvar(self, expr, subs, objects):
        var, args = expr.args

        # free variable (e.g., ?x) and literal (e.g., @x)
        if RDDLPlanningModel.is_free_object(var):
            return self._resolve_object(var, subs, objects, expr)
        elif var.startswith('@'):
            return var[1:]

        # non-parameterized variable or object
        elif not args:
            if var in subs:
                return subs[var]
            elif var in self.rddl.object_to_type:
                return var
            raise RDDLUndefinedVariableError(
                f'Variable <{var}> is referenced before assignment.\n' +
                print_stack_trace(expr))

        # ground the variable with the current binding
        else:
            objs = [self._resolve_object(arg, subs, objects, expr) for arg in args]
            name = RDDLPlanningModel.ground_var(var, objs)
            if name not in subs:
                raise RDDLUndefinedVariableError(
                    f'Ground variable <{name}> is referenced before assignment.\n' +
                    print_stack_trace(expr))
            return subs[name]

    # ===========================================================================
    # arithmetic, relational and logical operations
    # ===========================================================================

    def _sample_arithmetic(self, expr, subs, objects):
        _, op = expr.etype
        values = [self._check_numeric(self._sample(arg, subs, objects),
                                      f'Argument of arithmetic operator {op}', expr)
                  for arg in expr.args]

        if op == '+':
            return sum(values)
        elif op == '*':
            result = 1
            for value in values:
                result *= value
            return result
        elif op == '-':
            if len(values) == 1:
                return -values[0]
            lhs, rhs = values
            return lhs - rhs
        elif op == '/':
            lhs, rhs = values
            if rhs == 0:
                raise RDDLDivisionByZeroError(
                    f'Division by zero in {lhs} / {rhs}.\n' +
                    print_stack_trace(expr))
            return lhs / rhs
        else:
            raise RDDLNotImplementedError(
                f'Arithmetic operator {op} is not supported.\n' +
                print_stack_trace(expr))

    def _sample_relational(self, expr, subs, objects):
        _, op = expr.etype
        lhs, rhs = expr.args
        lhs = self._sample(lhs, subs, objects)
        rhs = self._sample(rhs, subs, objects)

        # labels and objects compare by identity only
        if isinstance(lhs, str) or isinstance(rhs, str):
            if not (isinstance(lhs, str) and isinstance(rhs, str)) \
            or op not in ('==', '~='):
                raise RDDLTypeError(
                    f'Relational operator {op} can not compare {lhs!r} '
                    f'and {rhs!r}.\n' + print_stack_trace(expr))
            return (lhs == rhs) == (op == '==')

        lhs = self._check_numeric(lhs, f'Argument of relational operator {op}', expr)
        rhs = self._check_numeric(rhs, f'Argument of relational operator {op}', expr)
        if op == '==':
            return lhs == rhs
        elif op == '~=':
            return lhs != rhs
        elif op == '<':
            return lhs < rhs
        elif op == '<=':
            return lhs <= rhs
        elif op == '>':
            return lhs > rhs
        else:
            return lhs >= rhs

    def _sample_logical(self, expr, subs, objects):
        _, op = expr.etype
        args = expr.args
        msg = f'Argument of logical operator {op}'

        def _arg(i):
            return self._check_bool(self._sample(args[i], subs, objects), msg, expr)

        if op == '~':
            return not _arg(0)

        # conjunction and disjunction short-circuit from left to right
        elif op in ('^', '&'):
            for i in range(len(args)):
                if not _arg(i):
                    return False
            return True
        elif op == '|':
            for i in range(len(args)):
                if _arg(i):
                    return True
            return False
        elif op == '=>':
            return (not _arg(0)) or _arg(1)
        elif op == '<=>':
            return _arg(0) == _arg(1)
        else:
            raise RDDLNotImplementedError(
                f'Logical operator {op} is not supported.\n' +
                print_stack_trace(expr))

    # ===========================================================================
    # aggregation
    # ===========================================================================

    def _sample_aggregation(self, expr, subs, objects):
        _, op = expr.etype
        * _, body = expr.args
        pnames, groundings = self.traced.cached_sim_info(expr)

        # evaluate the body for every binding, in declared order
        values = []
        for objs in groundings:
            scope = dict(objects)
            scope.update(zip(pnames, objs))
            values.append(self._sample(body, subs, scope))

        if op in ('forall', 'exists'):
            values = [self._check_bool(value, f'Argument of {op}', expr)
                      for value in values]
            return all(values) if op == 'forall' else any(values)

        values = [self._check_numeric(value, f'Argument of {op}', expr)
                  for value in values]
        if op == 'sum':
            return sum(values)
        elif op == 'prod':
            result = 1
            for value in values:
                result *= value
            return result
        elif op == 'avg':
            if not values:
                raise RDDLDivisionByZeroError(
                    'Average over an empty set of objects.\n' +
                    print_stack_trace(expr))
            return sum(values) / len(values)
        elif op in ('minimum', 'maximum'):
            if not values:
                raise RDDLValueOutOfRangeError(
                    f'{op} over an empty set of objects is undefined.\n' +
                    print_stack_trace(expr))
            return min(values) if op == 'minimum' else max(values)
        else:
            raise RDDLNotImplementedError(
                f'Aggregation operator {op} is not supported.\n' +
                print_stack_trace(expr))

    # ===========================================================================
    # function
    # ===========================================================================

    def _sample_func(self, expr, subs, objects):
        _, name = expr.etype
        values = [self._check_numeric(self._sample(arg, subs, objects),
                                      f'Argument of function {name}', expr)
                  for arg in expr.args]

        if name in ('div', 'mod', 'fmod') and values[1] == 0:
            raise RDDLDivisionByZeroError(
                f'Division by zero in {name}{tuple(values)}.\n' +
                print_stack_trace(expr))

        numpy_op = RDDLSimulator.UNARY.get(name, None)
        if numpy_op is None:
            numpy_op = RDDLSimulator.BINARY[name]
        all_int = all(isinstance(value, int) for value in values)
        try:
            with np.errstate(all='raise'):
                if name == 'pow' and all_int and values[1] >= 0:
                    result = values[0] ** values[1]
                elif name == 'pow':
                    result = float(numpy_op(float(values[0]), float(values[1])))
                else:
                    result = self._to_python(numpy_op(*values))
                if name in RDDLSimulator.INTEGER_VALUED \
                or (all_int and name in RDDLSimulator.INTEGER_PRESERVING):
                    result = int(result)
        except (FloatingPointError, ValueError, OverflowError) as e:
            raise RDDLArithmeticError(
                f'Function {name} is undefined at {tuple(values)}: {e}.\n' +
                print_stack_trace(expr)) from e
        return result

    # ===========================================================================
    # control flow
    # ===========================================================================

    def _sample_control(self, expr, subs, objects):
        _, op = expr.etype
        if op == 'if':
            pred, if_true, if_false = expr.args
            pred = self._check_bool(self._sample(pred, subs, objects),
                                    'If predicate', expr)
            branch = if_true if pred else if_false
            return self._sample(branch, subs, objects)

        else:
            pred, *_ = expr.args
            label = self._sample(pred, subs, objects)
            table = self.traced.cached_sim_info(expr)
            branch = table.get(label, None) if isinstance(label, str) else None
            if branch is None:
                raise RDDLInvalidObjectError(
                    f'Switch predicate evaluated to {label!r}, which is not '
                    f'one of the cases {set(table.keys())}.\n' +
                    print_stack_trace(expr))
            return self._sample(branch, subs, objects)

    # ===========================================================================
    # random variables
    # ===========================================================================

    def _sample_random(self, expr, subs, objects):
        _, name = expr.etype
        if name == 'Discrete':
            labels, prob_exprs = self.traced.cached_sim_info(expr)
            probs = [self._check_numeric(self._sample(arg, subs, objects),
                                         'Discrete probability', expr)
                     for arg in prob_exprs]
            return self.sampler.sample_discrete(labels, probs, expr)

        params = [self._sample(arg, subs, objects) for arg in expr.args]
        return self.sampler.sample(name, params, expr)
