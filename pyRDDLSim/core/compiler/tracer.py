from typing import Dict, List, Optional, Tuple

from pyRDDLSim.core.compiler.model import RDDLPlanningModel
from pyRDDLSim.core.debug.exception import print_stack_trace_root as PST
from pyRDDLSim.core.debug.exception import (
    RDDLInvalidNumberOfArgumentsError,
    RDDLInvalidObjectError,
    RDDLNonExhaustiveDiscreteError,
    RDDLNonExhaustiveSwitchError,
    RDDLNotImplementedError,
    RDDLRepeatedVariableError,
    RDDLRequirementError,
    RDDLTypeError,
    RDDLUnboundParameterError,
    RDDLUndefinedVariableError
)
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.distributions import RDDLDistributionSampler
from pyRDDLSim.core.parser.expr import Expression, switch_cases, typed_vars
from pyRDDLSim.core.simulator import RDDLSimulator


class RDDLTracedObjects:
    '''A generic container for storing traced information for a RDDL file.
    Information is keyed by the identity of each Expression node, so the AST
    itself is never modified by tracing.'''

    def __init__(self, tracer: Optional['RDDLObjectsTracer']=None) -> None:
        self._tracer = tracer
        self._current_root = ''
        self._cached_sim_info = {}
        self._cached_is_stochastic_cpf = {}

        # holds a reference to each traced node so its id() is never reused
        self._traced_exprs = {}

    def _append(self, expr, info) -> None:
        key = id(expr)
        self._traced_exprs[key] = expr
        self._cached_sim_info[key] = info

    def __len__(self) -> int:
        return len(self._traced_exprs)

    def is_traced(self, expr: Expression) -> bool:
        '''Returns whether the expression node has been traced.'''
        return self._traced_exprs.get(id(expr), None) is expr

    def cached_sim_info(self, expr: Expression) -> object:
        '''Returns compiled info that is specific to the expression: the
        ground objects of an aggregation, the label to branch table of a
        switch, or the probabilities of a Discrete in enum order.'''
        if not self.is_traced(expr):
            raise RDDLNotImplementedError(
                f'Internal error: expression {expr} has not been traced.')
        return self._cached_sim_info[id(expr)]

    def cached_is_stochastic_cpf(self, name: str) -> bool:
        '''Returns whether the CPF given by name samples a random variable.'''
        return self._cached_is_stochastic_cpf[name]

    def trace_expression(self, expr: Expression,
                         objects: Optional[Dict[str, str]]=None) -> None:
        '''Traces an expression that is not part of the domain, such as one
        passed directly to the simulator, against the same RDDL model.

        :param expr: the expression to trace
        :param objects: the types of the free parameters in scope of expr
        '''
        if self._tracer is None:
            raise RDDLNotImplementedError(
                f'Expression {expr} has not been traced, and no tracer is '
                f'available to trace it.')
        self._current_root = 'evaluated expression'
        self._tracer._trace(expr, dict(objects or {}), self)


class RDDLObjectsTracer:
    '''Performs static/compile-time tracing of a RDDL AST representation and
    caches info about objects that appear inside expressions.
    All checks that do not depend on the values of fluents happen here, so
    that a traced domain can only fail at run time on value errors.'''

    def __init__(self, rddl: RDDLPlanningModel,
                 cpf_levels: Dict[int, List[str]],
                 logger: Optional[Logger]=None) -> None:
        '''Creates a new objects tracer object for the given RDDL domain.

        :param rddl: the RDDL domain to trace
        :param cpf_levels: the CPF strata computed by RDDLLevelAnalysis
        :param logger: to log compilation information during tracing to file
        '''
        self.rddl = rddl
        self.cpf_levels = cpf_levels
        self.logger = logger

    def trace(self) -> RDDLTracedObjects:
        '''Traces all expressions in the current RDDL and returns the cached
        information of every AST node.

        An Expression object shared by two expressions keeps the info of the
        last trace only, which is safe since that info does not depend on the
        parameters in scope.'''
        rddl = self.rddl
        out = RDDLTracedObjects(self)

        # trace CPFs in evaluation order
        for cpfs in self.cpf_levels.values():
            for cpf in cpfs:
                params, expr = rddl.cpfs[cpf]
                out._current_root = f'CPF <{cpf}>'
                stochastic = self._trace(expr, dict(params), out)
                out._cached_is_stochastic_cpf[cpf] = stochastic

                if stochastic and 'cpf-deterministic' in rddl.requirements:
                    raise RDDLRequirementError(
                        f'CPF <{cpf}> samples a random variable, but the domain '
                        f'requires <cpf-deterministic>.\n' + PST(expr, out._current_root))

        # trace reward
        out._current_root = 'reward'
        if self._trace(rddl.reward, {}, out) \
        and 'reward-deterministic' in rddl.requirements:
            raise RDDLRequirementError(
                'Reward samples a random variable, but the domain requires '
                '<reward-deterministic>.\n' + PST(rddl.reward, 'reward'))

        # trace constraints
        for (kind, exprs) in (('Constraint', rddl.constraints),
                              ('Precondition', rddl.preconditions),
                              ('Invariant', rddl.invariants),
                              ('Termination', rddl.terminations)):
            for (i, expr) in enumerate(exprs):
                out._current_root = f'{kind} {i + 1}'
                self._trace(expr, {}, out)

        if self.logger is not None:
            message = '[info] traced expressions, whether each CPF is stochastic:\n'
            for cpfs in self.cpf_levels.values():
                for cpf in cpfs:
                    message += f'\t{cpf}: {out.cached_is_stochastic_cpf(cpf)}\n'
            message += f'\ttraced {len(out)} expression nodes.\n'
            self.logger.log(message)

        return out

    # ===========================================================================
    # start of tracing subroutines
    # ===========================================================================

    def _trace(self, expr, objects, out) -> bool:
        '''Traces expr with the given free parameters in scope; returns whether
        the expression samples a random variable.'''
        if not isinstance(expr, Expression):
            raise RDDLTypeError(
                f'Malformed expression {expr!r}.\n' +
                PST(expr, out._current_root))

        etype, _ = expr.etype
        if etype == 'constant':
            out._append(expr, None)
            return False
        elif etype == 'pvar':
            return self._trace_pvar(expr, objects, out)
        elif etype in {'arithmetic', 'relational', 'boolean'}:
            return self._trace_operation(expr, objects, out)
        elif etype == 'aggregation':
            return self._trace_aggregation(expr, objects, out)
        elif etype == 'func':
            return self._trace_func(expr, objects, out)
        elif etype == 'control':
            return self._trace_control(expr, objects, out)
        elif etype == 'randomvar':
            return self._trace_random(expr, objects, out)
        else:
            raise RDDLNotImplementedError(
                f'Internal error: expression type {etype} is not supported.\n' +
                PST(expr, out._current_root))

    # ===========================================================================
    # leaves
    # ===========================================================================

    @staticmethod
    def _arg_name(arg):
        if isinstance(arg, Expression) and arg.is_pvariable_expression():
            name, params = arg.args
            if not params:
                return name
        return arg

    def _trace_pvar(self, expr, objects, out):
        rddl = self.rddl
        name, pvars = expr.args

        # free parameter must be bound
        if RDDLPlanningModel.is_free_object(name):
            if pvars:
                raise RDDLInvalidNumberOfArgumentsError(
                    f'Free parameter <{name}> can not have arguments.\n' +
                    PST(expr, out._current_root))
            if name not in objects:
                raise RDDLUnboundParameterError(
                    f'Parameter <{name}> is not bound by the CPF or an enclosing '
                    f'aggregation, parameters in scope are {set(objects.keys())}.\n' +
                    PST(expr, out._current_root))

        # enum literal
        elif name.startswith('@'):
            if not rddl.is_literal(name):
                raise RDDLInvalidObjectError(
                    f'<{name}> is not a literal of any enumerated type in '
                    f'{set(rddl.enum_types)}.\n' + PST(expr, out._current_root))

        # object constant
        elif not pvars and rddl.is_object(name):
            pass

        # variable
        else:
            ptypes = rddl.variable_params.get(name, None)
            if ptypes is None:
                raise RDDLUndefinedVariableError(
                    f'Variable <{name}> is not defined in the domain.\n' +
                    PST(expr, out._current_root))
            args = list(pvars or [])
            if len(args) != len(ptypes):
                raise RDDLInvalidNumberOfArgumentsError(
                    f'Variable <{name}> requires {len(ptypes)} argument(s), '
                    f'got {len(args)}.\n' + PST(expr, out._current_root))
            for (arg, ptype) in zip(args, ptypes):
                self._check_argument(expr, name, self._arg_name(arg), ptype,
                                     objects, out)

        out._append(expr, None)
        return False

    def _check_argument(self, expr, var, arg, ptype, objects, out):
        rddl = self.rddl
        if not isinstance(arg, str):
            raise RDDLTypeError(
                f'Argument {arg} of variable <{var}> must be a parameter '
                f'or an object of type <{ptype}>.\n' +
                PST(expr, out._current_root))
        if RDDLPlanningModel.is_free_object(arg):
            arg_type = objects.get(arg, None)
            if arg_type is None:
                raise RDDLUnboundParameterError(
                    f'Parameter <{arg}> of variable <{var}> is not bound, '
                    f'parameters in scope are {set(objects.keys())}.\n' +
                    PST(expr, out._current_root))
        else:
            if not rddl.is_object(arg):
                raise RDDLInvalidObjectError(
                    f'Argument <{arg}> of variable <{var}> is not a parameter '
                    f'or an object.\n' + PST(expr, out._current_root))
            arg_type = rddl.object_to_type[arg]
        if arg_type != ptype:
            raise RDDLTypeError(
                f'Argument <{arg}> of variable <{var}> is of type <{arg_type}>, '
                f'required type is <{ptype}>.\n' + PST(expr, out._current_root))

    # ===========================================================================
    # compound expressions
    # ===========================================================================

    # operator -> (min number of args, max number of args or None)
    OPERATOR_ARITY = {
        '+': (1, None), '*': (1, None), '-': (1, 2), '/': (2, 2),
        '^': (1, None), '&': (1, None), '|': (1, None), '~': (1, 1),
        '=>': (2, 2), '<=>': (2, 2),
        '==': (2, 2), '~=': (2, 2), '<': (2, 2), '<=': (2, 2),
        '>': (2, 2), '>=': (2, 2)
    }

    def _trace_operation(self, expr, objects, out):
        _, op = expr.etype
        args = expr.args
        low, high = RDDLObjectsTracer.OPERATOR_ARITY[op]
        if len(args) < low or (high is not None and len(args) > high):
            raise RDDLInvalidNumberOfArgumentsError(
                f'Operator {op} requires between {low} and {high or "any"} '
                f'arguments, got {len(args)}.\n' + PST(expr, out._current_root))

        stochastic = False
        for arg in args:
            stochastic = self._trace(arg, objects, out) or stochastic
        out._append(expr, None)
        return stochastic

    def _trace_aggregation(self, expr, objects, out):
        rddl = self.rddl
        * _, body = expr.args
        params = typed_vars(expr)

        # check the bound parameters
        scope = dict(objects)
        for (pname, ptype) in params:
            if not RDDLPlanningModel.is_free_object(pname):
                raise RDDLInvalidObjectError(
                    f'Aggregation parameter <{pname}> must be a free parameter '
                    f'such as ?x.\n' + PST(expr, out._current_root))
            if pname in scope:
                raise RDDLRepeatedVariableError(
                    f'Aggregation parameter <{pname}> is already bound '
                    f'in scope {set(scope.keys())}.\n' + PST(expr, out._current_root))
            if ptype not in rddl.object_types:
                raise RDDLTypeError(
                    f'Aggregation parameter <{pname}> must range over an object '
                    f'type in {set(rddl.object_types)}, got <{ptype}>.\n' +
                    PST(expr, out._current_root))
            scope[pname] = ptype
        if not params:
            raise RDDLInvalidNumberOfArgumentsError(
                'Aggregation requires at least one parameter.\n' +
                PST(expr, out._current_root))

        stochastic = self._trace(body, scope, out)

        # cache the bindings in declared order
        pnames = tuple(pname for (pname, _) in params)
        groundings = tuple(rddl.ground_types([ptype for (_, ptype) in params]))
        out._append(expr, (pnames, groundings))
        return stochastic

    def _trace_func(self, expr, objects, out):
        _, name = expr.etype
        args = expr.args
        if name in RDDLSimulator.UNARY:
            arity = 1
        elif name in RDDLSimulator.BINARY:
            arity = 2
        else:
            raise RDDLNotImplementedError(
                f'Function <{name}> is not supported, must be one of '
                f'{set(RDDLSimulator.UNARY) | set(RDDLSimulator.BINARY)}.\n' +
                PST(expr, out._current_root))
        if len(args) != arity:
            raise RDDLInvalidNumberOfArgumentsError(
                f'Function <{name}> requires {arity} argument(s), '
                f'got {len(args)}.\n' + PST(expr, out._current_root))

        stochastic = False
        for arg in args:
            stochastic = self._trace(arg, objects, out) or stochastic
        out._append(expr, None)
        return stochastic

    def _trace_control(self, expr, objects, out):
        _, op = expr.etype
        if op == 'if':
            args = expr.args
            if len(args) != 3:
                raise RDDLInvalidNumberOfArgumentsError(
                    f'If statement requires 3 arguments, got {len(args)}.\n' +
                    PST(expr, out._current_root))
            stochastic = False
            for arg in args:
                stochastic = self._trace(arg, objects, out) or stochastic
            out._append(expr, None)
            return stochastic
        else:
            return self._trace_switch(expr, objects, out)

    def _infer_enum(self, pred, objects):
        if not pred.is_pvariable_expression():
            return None
        name, _ = pred.args
        if RDDLPlanningModel.is_free_object(name):
            return objects.get(name, None)
        return self.rddl.variable_ranges.get(name, None)

    def _trace_switch(self, expr, objects, out):
        rddl = self.rddl
        pred, cases, default = switch_cases(expr)
        stochastic = self._trace(pred, objects, out)

        # determine the enumerated type being switched on
        enum_type = self._infer_enum(pred, objects)
        if enum_type is None and cases:
            label, _ = cases[0]
            enum_type = rddl.object_to_type.get(
                RDDLPlanningModel.strip_literal(label), None)
        if enum_type not in rddl.enum_types:
            raise RDDLTypeError(
                f'Switch predicate must be of an enumerated type in '
                f'{set(rddl.enum_types)}, got <{enum_type}>.\n' +
                PST(expr, out._current_root))

        # each label must appear once
        labels = rddl.type_to_objects[enum_type]
        table = {}
        for (label, arg) in cases:
            label = RDDLPlanningModel.strip_literal(label)
            if label not in labels:
                raise RDDLInvalidObjectError(
                    f'Case <@{label}> is not a literal of enumerated type '
                    f'<{enum_type}> with values {labels}.\n' +
                    PST(expr, out._current_root))
            if label in table:
                raise RDDLNonExhaustiveSwitchError(
                    f'Case <@{label}> appears more than once in switch.\n' +
                    PST(expr, out._current_root))
            table[label] = arg
            stochastic = self._trace(arg, objects, out) or stochastic

        # a default covers the remaining labels
        missing = [label for label in labels if label not in table]
        if missing:
            if default is None:
                raise RDDLNonExhaustiveSwitchError(
                    f'Switch over <{enum_type}> does not cover case(s) '
                    f'{missing} and has no default.\n' +
                    PST(expr, out._current_root))
            for label in missing:
                table[label] = default
        if default is not None:
            stochastic = self._trace(default, objects, out) or stochastic

        out._append(expr, table)
        return stochastic

    def _trace_random(self, expr, objects, out):
        _, name = expr.etype
        if name == 'Discrete':
            self._trace_discrete(expr, objects, out)
            return True

        arity = RDDLDistributionSampler.ARITY.get(name, None)
        if arity is None:
            raise RDDLNotImplementedError(
                f'Distribution <{name}> is not supported, must be one of '
                f'{set(RDDLDistributionSampler.ARITY) | {"Discrete"}}.\n' +
                PST(expr, out._current_root))
        args = expr.args
        if len(args) != arity:
            raise RDDLInvalidNumberOfArgumentsError(
                f'Distribution <{name}> requires {arity} argument(s), '
                f'got {len(args)}.\n' + PST(expr, out._current_root))

        for arg in args:
            self._trace(arg, objects, out)
        out._append(expr, None)
        return name not in RDDLDistributionSampler.DETERMINISTIC

    def _trace_discrete(self, expr, objects, out):
        rddl = self.rddl
        enum_type, cases = expr.args
        if enum_type not in rddl.enum_types:
            raise RDDLTypeError(
                f'Discrete must be defined over an enumerated type in '
                f'{set(rddl.enum_types)}, got <{enum_type}>.\n' +
                PST(expr, out._current_root))

        labels = rddl.type_to_objects[enum_type]
        probs = {}
        for (label, arg) in cases:
            label = RDDLPlanningModel.strip_literal(label)
            if label not in labels:
                raise RDDLInvalidObjectError(
                    f'<@{label}> is not a literal of enumerated type '
                    f'<{enum_type}> with values {labels}.\n' +
                    PST(expr, out._current_root))
            if label in probs:
                raise RDDLNonExhaustiveDiscreteError(
                    f'Outcome <@{label}> appears more than once in Discrete.\n' +
                    PST(expr, out._current_root))
            probs[label] = arg
            self._trace(arg, objects, out)

        missing = [label for label in labels if label not in probs]
        if missing:
            raise RDDLNonExhaustiveDiscreteError(
                f'Discrete over <{enum_type}> does not assign a probability '
                f'to outcome(s) {missing}.\n' + PST(expr, out._current_root))

        info: Tuple = (labels, tuple(probs[label] for label in labels))
        out._append(expr, info)
