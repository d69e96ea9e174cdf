from typing import Any, Iterable, Mapping, Optional, Tuple, Union

from pyRDDLSim.core.parser.cpf import CPF
from pyRDDLSim.core.parser.expr import (
    AGGREGATION_OPS,
    ARITHMETIC_OPS,
    LOGICAL_OPS,
    RELATIONAL_OPS,
    Expression
)
from pyRDDLSim.core.parser.pvariable import FLUENT_TYPES, PVariable
from pyRDDLSim.core.parser.rddl import RDDL, Domain, Instance, NonFluents

ExprLike = Union[Expression, bool, int, float, str]

PRIMITIVE_RANGES = {'bool', 'int', 'real'}


class RDDLBuilder:
    '''A general class for building RDDL domain and instance blocks
    programmatically, as they would be produced by a RDDL parser.'''

    def __init__(self) -> None:

        # domain definitions
        self.requirements = []
        self.object_types = []
        self.enum_types = {}
        self.pvariable_defs = {}
        self.cpf_defs = {}
        self.reward_def = None
        self.constraint_defs = []
        self.termination_defs = []
        self.invariant_defs = []
        self.precondition_defs = []

        # instance definitions
        self.object_values = {}
        self.instance_object_values = {}
        self.nonfluent_inits = []
        self.init_states = []
        self.maxnondef = 'pos-inf'
        self.horizon = None
        self.discount = None

    # ===========================================================================
    # domain construction
    # ===========================================================================

    def add_requirement(self, name: str) -> None:
        if name not in self.requirements:
            self.requirements.append(name)

    def add_object_type(self, name: str) -> None:
        if name not in self.object_types:
            self.object_types.append(name)

    def add_enum_type(self, name: str, objects: Iterable[str]) -> None:
        self.enum_types[name] = [_as_literal(obj) for obj in objects]

    def add_pvariable(self, name: str, params: Iterable[str], ptype: str, prange: str,
                      default: Any=None, level: Optional[int]=None) -> None:
        params = list(params)
        if ptype in {'interm-fluent', 'observ-fluent'}:
            default = None
        if ptype not in FLUENT_TYPES:
            raise ValueError(f'<{ptype}> is not a valid pvariable type.')
        if prange not in PRIMITIVE_RANGES and prange not in self.enum_types:
            raise ValueError(f'<{prange}> is not a valid pvariable range.')
        for param in params:
            if param not in self.object_types:
                raise ValueError(f'<{param}> is not a valid pvariable parameter type.')
        if prange in self.enum_types and isinstance(default, str):
            default = _as_literal(default)
        self.pvariable_defs[name] = PVariable(
            name=name, fluent_type=ptype, range_type=prange,
            param_types=params, default=default, level=level)

    def add_cpf(self, name: str, params: Iterable[str], expr: ExprLike) -> None:
        '''Adds a CPF; state-fluent CPFs must be given the primed name (e.g. x').'''
        params = list(params)
        pvar = ('pvar_expr', (name, params if params else None))
        self.cpf_defs[name] = CPF(pvar, as_expr(expr))

    def add_reward(self, expr: ExprLike) -> None:
        self.reward_def = as_expr(expr)

    def add_constraint(self, expr: ExprLike) -> None:
        self.constraint_defs.append(as_expr(expr))

    def add_termination(self, expr: ExprLike) -> None:
        self.termination_defs.append(as_expr(expr))

    def add_invariant(self, expr: ExprLike) -> None:
        self.invariant_defs.append(as_expr(expr))

    def add_precondition(self, expr: ExprLike) -> None:
        self.precondition_defs.append(as_expr(expr))

    def build_domain(self, name: str) -> Domain:
        types = [(otype, 'object') for otype in self.object_types]
        types.extend((etype, list(labels)) for (etype, labels) in self.enum_types.items())
        sections = {
            'types': types,
            'pvariables': list(self.pvariable_defs.values()),
            'cpfs': list(self.cpf_defs.values()),
            'reward': self.reward_def,
            'constraints': list(self.constraint_defs),
            'preconds': list(self.precondition_defs),
            'invariants': list(self.invariant_defs),
            'terminals': list(self.termination_defs)
        }
        return Domain(name, list(self.requirements), sections)

    # ===========================================================================
    # instance construction
    # ===========================================================================

    def add_object_values(self, name: str, values: Iterable[str]) -> None:
        self.object_values.setdefault(name, []).extend(values)

    def add_instance_object_values(self, name: str, values: Iterable[str]) -> None:
        '''Adds objects in the instance block, extending the non-fluents block.'''
        self.instance_object_values.setdefault(name, []).extend(values)

    def add_nonfluent_init(self, pvar: str, params: Iterable[str], value: Any) -> None:
        params = list(params)
        self.nonfluent_inits.append(((pvar, params if params else None), value))

    def add_init_state(self, pvar: str, params: Iterable[str], value: Any) -> None:
        params = list(params)
        self.init_states.append(((pvar, params if params else None), value))

    def add_max_nondef_actions(self, value: Union[int, str]) -> None:
        self.maxnondef = value

    def add_discount(self, value: float) -> None:
        self.discount = value

    def add_horizon(self, value: int) -> None:
        self.horizon = value

    def build_instance(self, domain_name: str, instance_name: str,
                       nonfluents_name: str) -> Tuple[NonFluents, Instance]:
        non_fluents = NonFluents(nonfluents_name, {
            'domain': domain_name,
            'objects': [(otype, list(objects))
                        for (otype, objects) in self.object_values.items()],
            'init_non_fluent': list(self.nonfluent_inits)
        })
        instance = Instance(instance_name, {
            'domain': domain_name,
            'non_fluents': nonfluents_name,
            'objects': [(otype, list(objects))
                        for (otype, objects) in self.instance_object_values.items()],
            'init_state': list(self.init_states),
            'max_nondef_actions': self.maxnondef,
            'horizon': self.horizon,
            'discount': self.discount
        })
        return non_fluents, instance

    def build(self, domain_name: str, instance_name: str,
              nonfluents_name: Optional[str]=None) -> RDDL:
        if nonfluents_name is None:
            nonfluents_name = f'nf_{instance_name}'
        domain = self.build_domain(domain_name)
        non_fluents, instance = self.build_instance(
            domain_name, instance_name, nonfluents_name)
        return RDDL({'domain': domain,
                     'non_fluents': non_fluents,
                     'instance': instance})


# ===========================================================================
# expression construction
# ===========================================================================

def _as_literal(label: str) -> str:
    return label if label.startswith('@') else f'@{label}'


def as_expr(value: ExprLike) -> Expression:
    '''Wraps a Python value as an expression: booleans and numbers become
    constants, strings become variable, parameter (?x), literal (@x) or object
    references.'''
    if isinstance(value, Expression):
        return value
    elif isinstance(value, bool):
        return Expression(('boolean', value))
    elif isinstance(value, (int, float)):
        return Expression(('number', value))
    elif isinstance(value, str):
        return pvar(value)
    raise TypeError(f'Cannot convert {value!r} of type {type(value)} to an expression.')


def constant(value: Union[bool, int, float]) -> Expression:
    if not isinstance(value, (bool, int, float)):
        raise TypeError(f'Constant must be bool, int or float, got {value!r}.')
    return as_expr(value)


def pvar(name: str, params: Optional[Iterable[ExprLike]]=None) -> Expression:
    '''A reference to a variable, a free parameter (?x), an object or an enum
    literal (@x). Arguments may be parameters or object names.'''
    if params is not None:
        params = [(arg if isinstance(arg, (str, Expression)) else as_expr(arg))
                  for arg in params]
        if not params:
            params = None
    return Expression(('pvar_expr', (name, params)))


def literal(label: str) -> Expression:
    return pvar(_as_literal(label))


def arithmetic(op: str, *args: ExprLike) -> Expression:
    if op not in ARITHMETIC_OPS:
        raise ValueError(f'<{op}> is not an arithmetic operator.')
    return Expression((op, tuple(map(as_expr, args))))


def logical(op: str, *args: ExprLike) -> Expression:
    if op not in LOGICAL_OPS:
        raise ValueError(f'<{op}> is not a logical operator.')
    return Expression((op, tuple(map(as_expr, args))))


def relational(op: str, lhs: ExprLike, rhs: ExprLike) -> Expression:
    if op not in RELATIONAL_OPS:
        raise ValueError(f'<{op}> is not a relational operator.')
    return Expression((op, (as_expr(lhs), as_expr(rhs))))


def func(name: str, *args: ExprLike) -> Expression:
    return Expression(('func', (name, tuple(map(as_expr, args)))))


def aggregation(op: str, params: Iterable[Tuple[str, str]], body: ExprLike) -> Expression:
    '''An aggregation such as sum_{?x: t1, ?y: t2} [body].'''
    if op not in AGGREGATION_OPS:
        raise ValueError(f'<{op}> is not an aggregation operator.')
    pvars = tuple(('typed_var', (name, ptype)) for (name, ptype) in params)
    return Expression((op, pvars + (as_expr(body),)))


def if_then_else(condition: ExprLike, then_expr: ExprLike, else_expr: ExprLike) -> Expression:
    return Expression(('if', (as_expr(condition), as_expr(then_expr), as_expr(else_expr))))


def switch(predicate: ExprLike, cases: Union[Mapping[str, ExprLike], Iterable[Tuple[str, ExprLike]]],
           default: Optional[ExprLike]=None) -> Expression:
    if isinstance(cases, Mapping):
        cases = cases.items()
    args = [as_expr(predicate)]
    args.extend(('case', (_as_literal(label), as_expr(expr))) for (label, expr) in cases)
    if default is not None:
        args.append(('default', as_expr(default)))
    return Expression(('switch', tuple(args)))


def random_variable(name: str, *args: ExprLike) -> Expression:
    return Expression(('randomvar', (name, tuple(map(as_expr, args)))))


def discrete(enum_type: str, cases: Union[Mapping[str, ExprLike], Iterable[Tuple[str, ExprLike]]]) -> Expression:
    '''Discrete(enum_type, @label1 : p1, ..., @labeln : pn).'''
    if isinstance(cases, Mapping):
        cases = cases.items()
    cases = tuple((_as_literal(label), as_expr(prob)) for (label, prob) in cases)
    return Expression(('randomvar', ('Discrete', (enum_type, cases))))
