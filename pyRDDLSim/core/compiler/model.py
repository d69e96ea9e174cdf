from abc import ABCMeta
import itertools
from pprint import pformat
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

from pyRDDLSim.core.debug.exception import (
    RDDLInstanceNotExistError,
    RDDLInvalidDependencyInCPFError,
    RDDLInvalidNumberOfArgumentsError,
    RDDLInvalidObjectError,
    RDDLMissingCPFDefinitionError,
    RDDLRepeatedVariableError,
    RDDLRequirementError,
    RDDLTypeError,
    RDDLUndefinedCPFError,
    RDDLValueOutOfRangeError
)
from pyRDDLSim.core.parser.expr import Expression
from pyRDDLSim.core.parser.pvariable import DEFAULTED_TYPES, FLUENT_TYPES, PVariable
from pyRDDLSim.core.parser.rddl import RDDL


class RDDLPlanningModel(metaclass=ABCMeta):
    '''The base class representing all RDDL domains + instances. Holds the
    object and enumerated type registry, the table of variable schemas and
    the expressions of the domain. All containers are read-only once built.
    '''

    # grounded variable is var___obj1__obj2...
    FLUENT_SEP = '___'
    OBJECT_SEP = '__'
    NEXT_STATE_SYM = '\''

    PRIMITIVE_TYPES = {
        'int': int,
        'real': float,
        'bool': bool
    }

    KNOWN_REQUIREMENTS = {
        'concurrent',
        'constrained-state',
        'continuous',
        'cpf-deterministic',
        'integer-valued',
        'intermediate-nodes',
        'multivalued',
        'partially-observed',
        'reward-deterministic'
    }

    def __init__(self) -> None:

        # base
        self._AST = None
        self._requirements = frozenset()

        # objects
        self._type_to_objects = None
        self._object_types = None
        self._enum_types = None
        self._object_to_type = None
        self._object_to_index = None

        # variable info
        self._variables = None
        self._variable_types = None
        self._variable_ranges = None
        self._variable_params = None
        self._variable_defaults = None
        self._variable_levels = None

        self._non_fluents = None
        self._state_fluents = None
        self._next_state = None
        self._action_fluents = None
        self._interm_fluents = None
        self._observ_fluents = None

        # cpf info
        self._cpfs = None
        self._reward = None

        # constraint info
        self._constraints = None
        self._preconditions = None
        self._invariants = None
        self._terminations = None

        # instance info
        self._init_non_fluents = None
        self._init_states = None
        self._discount = None
        self._horizon = None
        self._max_allowed_actions = None

    # ===========================================================================
    # base properties
    # ===========================================================================

    @property
    def ast(self):
        return self._AST

    @property
    def domain_name(self):
        return None if self._AST is None else self._AST.domain.name

    @property
    def instance_name(self):
        return None if self._AST is None else self._AST.instance.name

    @property
    def requirements(self):
        return self._requirements

    # ===========================================================================
    # objects
    # ===========================================================================

    @property
    def type_to_objects(self) -> Mapping[str, Tuple[str, ...]]:
        return self._type_to_objects

    @property
    def object_types(self):
        return self._object_types

    @property
    def enum_types(self):
        return self._enum_types

    @property
    def object_to_type(self):
        return self._object_to_type

    @property
    def object_to_index(self):
        return self._object_to_index

    # ===========================================================================
    # variables
    # ===========================================================================

    @property
    def variables(self) -> Mapping[str, PVariable]:
        '''The schema of every variable, including next-state variables.'''
        return self._variables

    @property
    def variable_types(self) -> Mapping[str, str]:
        return self._variable_types

    @property
    def variable_ranges(self) -> Mapping[str, str]:
        return self._variable_ranges

    @property
    def variable_params(self) -> Mapping[str, Tuple[str, ...]]:
        return self._variable_params

    @property
    def variable_defaults(self):
        return self._variable_defaults

    @property
    def variable_levels(self) -> Mapping[str, int]:
        return self._variable_levels

    @property
    def non_fluents(self) -> Tuple[str, ...]:
        return self._non_fluents

    @property
    def state_fluents(self) -> Tuple[str, ...]:
        return self._state_fluents

    @property
    def next_state(self) -> Mapping[str, str]:
        return self._next_state

    @property
    def action_fluents(self) -> Tuple[str, ...]:
        return self._action_fluents

    @property
    def interm_fluents(self) -> Tuple[str, ...]:
        return self._interm_fluents

    @property
    def observ_fluents(self) -> Tuple[str, ...]:
        return self._observ_fluents

    @property
    def is_pomdp(self) -> bool:
        return bool(self._observ_fluents)

    # ===========================================================================
    # expressions
    # ===========================================================================

    @property
    def cpfs(self) -> Mapping[str, Tuple[List[Tuple[str, str]], Expression]]:
        return self._cpfs

    @property
    def reward(self) -> Expression:
        return self._reward

    @property
    def constraints(self) -> Tuple[Expression, ...]:
        return self._constraints

    @property
    def preconditions(self) -> Tuple[Expression, ...]:
        return self._preconditions

    @property
    def invariants(self) -> Tuple[Expression, ...]:
        return self._invariants

    @property
    def terminations(self) -> Tuple[Expression, ...]:
        return self._terminations

    # ===========================================================================
    # instance
    # ===========================================================================

    @property
    def init_non_fluents(self):
        return self._init_non_fluents

    @property
    def init_states(self):
        return self._init_states

    @property
    def discount(self) -> float:
        return self._discount

    @property
    def horizon(self) -> int:
        return self._horizon

    @property
    def max_allowed_actions(self) -> int:
        return self._max_allowed_actions

    # ===========================================================================
    # class methods for general RDDL syntax rules
    # ===========================================================================

    @staticmethod
    def is_free_object(name: str) -> bool:
        '''Determines whether the name is a free object (e.g., ?x).
        '''
        return name[0] == '?'

    @staticmethod
    def strip_literal(name: str) -> str:
        '''Returns the canonical name of an enum literal
        (e.g., given @x returns x). All other strings are returned unmodified.
        '''
        if name[0] == '@':
            name = name[1:]
        return name

    @staticmethod
    def ground_var(name: str, objects: Optional[Iterable[str]]) -> str:
        '''Given a variable name and list of objects as arguments, produces the
        grounded representation <variable>___<obj1>__<obj2>__...
        '''
        PRIME = RDDLPlanningModel.NEXT_STATE_SYM
        is_primed = name.endswith(PRIME)
        var = name
        if is_primed:
            var = var[:-len(PRIME)]
        if objects is not None and objects:
            objects = RDDLPlanningModel.OBJECT_SEP.join(objects)
            var += RDDLPlanningModel.FLUENT_SEP + objects
        if is_primed:
            var += PRIME
        return var

    @staticmethod
    def parse_grounded(expr: str) -> Tuple[str, List[str]]:
        '''Parses a variable of the form <name>___<obj1>__<obj2>...
        into a tuple (<name>, [<obj1>, <obj2>, ...]).
        '''
        PRIME = RDDLPlanningModel.NEXT_STATE_SYM
        is_primed = expr.endswith(PRIME)
        if is_primed:
            expr = expr[:-len(PRIME)]
        var, *objects = expr.split(RDDLPlanningModel.FLUENT_SEP)
        if objects:
            if len(objects) != 1:
                raise RDDLInvalidObjectError(
                    f'Variable {expr} contains multiple fluent separators.')
            objects = objects[0].split(RDDLPlanningModel.OBJECT_SEP)
        if is_primed:
            var += PRIME
        return var, objects

    # ===========================================================================
    # utility methods
    # ===========================================================================

    def is_object(self, name: str) -> bool:
        '''Returns whether the given name is an object of an object type.'''
        ptype = self._object_to_type.get(name, None)
        return ptype is not None and ptype not in self._enum_types

    def is_literal(self, name: str) -> bool:
        '''Returns whether the given name is a valid enum literal (@x).'''
        if not name.startswith('@'):
            return False
        ptype = self._object_to_type.get(name[1:], None)
        return ptype is not None and ptype in self._enum_types

    def ground_types(self, ptypes: Iterable[str]) -> Iterable[Tuple[str, ...]]:
        '''Given a list of types, produces the Cartesian product of the objects
        of each type in declared order (last type varying fastest).'''
        objects_by_type = [self._type_to_objects[ptype] for ptype in ptypes]
        return itertools.product(*objects_by_type)

    def is_compatible(self, var: str, objects: Optional[List[str]]) -> bool:
        '''Determines whether or not the given variable can be assigned the
        list of objects in the given order to its type parameters.
        '''
        ptypes = self._variable_params.get(var, None)
        if ptypes is None:
            return False
        if objects is None:
            objects = []
        if len(ptypes) != len(objects):
            return False
        for (ptype, obj) in zip(ptypes, objects):
            if self._object_to_type.get(obj, None) != ptype:
                return False
        return True

    def __str__(self):
        return pformat({key: value for (key, value) in vars(self).items()
                        if key != '_AST'})


class RDDLLiftedModel(RDDLPlanningModel):
    '''A class representing a RDDL domain + instance in lifted form. Validates
    and extracts types, objects, variable schemas, CPFs, constraints and the
    instance configuration.
    '''

    def __init__(self, rddl: RDDL) -> None:
        super(RDDLLiftedModel, self).__init__()

        self._AST = rddl

        self._check_block_references()
        self._extract_requirements()
        self._extract_objects()
        self._extract_variable_information()
        self._extract_cpfs()
        self._extract_constraints()

        self._extract_horizon()
        self._extract_discount()
        self._extract_max_actions()
        self._extract_initializers()
        self._check_requirements()

    def _check_block_references(self):
        domain, non_fluents, instance = \
            self._AST.domain, self._AST.non_fluents, self._AST.instance
        if non_fluents.domain != domain.name:
            raise RDDLInstanceNotExistError(
                f'Non-fluents block <{non_fluents.name}> refers to domain '
                f'<{non_fluents.domain}>, expected <{domain.name}>.')
        if instance.domain != domain.name:
            raise RDDLInstanceNotExistError(
                f'Instance <{instance.name}> refers to domain '
                f'<{instance.domain}>, expected <{domain.name}>.')
        if instance.non_fluents != non_fluents.name:
            raise RDDLInstanceNotExistError(
                f'Instance <{instance.name}> refers to non-fluents block '
                f'<{instance.non_fluents}>, expected <{non_fluents.name}>.')

    def _extract_requirements(self):
        requirements = self._AST.domain.requirements or []
        for req in requirements:
            if req not in RDDLPlanningModel.KNOWN_REQUIREMENTS:
                raise RDDLRequirementError(
                    f'Requirement <{req}> is not valid, must be one of '
                    f'{sorted(RDDLPlanningModel.KNOWN_REQUIREMENTS)}.')
        self._requirements = frozenset(requirements)

    def _extract_objects(self):

        # objects of each type as declared in non-fluents, extended by instance
        declared = {}
        for block in (self._AST.non_fluents, self._AST.instance):
            for (name, objects) in (block.objects or []):
                declared.setdefault(name, []).extend(objects)

        # record the set of objects of each type defined in the domain
        objects, enums, otypes = {}, set(), []
        for (name, pvalues) in self._AST.domain.types:

            # check duplicated type
            if name in objects or name in RDDLPlanningModel.PRIMITIVE_TYPES:
                raise RDDLInvalidObjectError(
                    f'Type <{name}> is repeated or shadows a primitive type.')

            # instance object
            if pvalues == 'object':
                values = declared.pop(name, None)
                if not values:
                    raise RDDLInvalidObjectError(
                        f'Type <{name}> has no object defined in the instance.')
                otypes.append(name)

            # domain object
            else:
                if name in declared:
                    raise RDDLInvalidObjectError(
                        f'Objects can not be declared for enumerated type <{name}>.')
                values = pvalues
                enums.add(name)
            objects[name] = tuple(map(RDDLPlanningModel.strip_literal, values))

        if declared:
            raise RDDLInvalidObjectError(
                f'Objects declared for undefined type(s) {set(declared.keys())}.')

        # make sure types do not share an object - record type of each object
        objects_rev, objects_index = {}, {}
        for (name, values) in objects.items():
            for (index, obj) in enumerate(values):
                if obj in objects_rev:
                    raise RDDLInvalidObjectError(
                        f'Object <{obj}> of type <{name}> is already declared '
                        f'in type <{objects_rev[obj]}>.')
                objects_rev[obj] = name
                objects_index[obj] = index

        self._type_to_objects = MappingProxyType(objects)
        self._object_types = tuple(otypes)
        self._enum_types = frozenset(enums)
        self._object_to_type = MappingProxyType(objects_rev)
        self._object_to_index = MappingProxyType(objects_index)

    def _extract_variable_information(self):
        PRIME = RDDLPlanningModel.NEXT_STATE_SYM
        schemas = {}
        by_type = {ftype: [] for ftype in FLUENT_TYPES}

        for pvar in self._AST.domain.pvariables:
            name, prange = pvar.name, pvar.range

            # check name, then the declaration itself
            if name in schemas or name in self._object_to_type \
            or name in self._type_to_objects:
                raise RDDLRepeatedVariableError(
                    f'Variable <{name}> is repeated or shares its name with '
                    f'a type or object.')
            if PRIME in name or RDDLPlanningModel.FLUENT_SEP in name:
                raise RDDLTypeError(
                    f'Variable name <{name}> contains a reserved symbol.')
            pvar.validate()

            # check range
            if prange not in RDDLPlanningModel.PRIMITIVE_TYPES \
            and prange not in self._enum_types:
                raise RDDLTypeError(
                    f'Range <{prange}> of variable <{name}> is not valid, '
                    f'must be an enumerated type in {set(self._enum_types)} '
                    f'or a primitive type in '
                    f'{set(RDDLPlanningModel.PRIMITIVE_TYPES.keys())}.')

            # check parameters are objects
            for param in pvar.param_types:
                if param not in self._object_types:
                    raise RDDLTypeError(
                        f'Parameter type <{param}> of variable <{name}> is not '
                        f'valid, must be an object type in {set(self._object_types)}.')

            schemas[name] = pvar
            by_type[pvar.fluent_type].append(name)
            if pvar.fluent_type == 'state-fluent':
                primed = pvar.next_state(PRIME)
                schemas[primed.name] = primed

        self._variables = MappingProxyType(schemas)
        self._variable_types = MappingProxyType(
            {name: pvar.fluent_type for (name, pvar) in schemas.items()})
        self._variable_ranges = MappingProxyType(
            {name: pvar.range for (name, pvar) in schemas.items()})
        self._variable_params = MappingProxyType(
            {name: pvar.param_types for (name, pvar) in schemas.items()})
        self._variable_defaults = MappingProxyType(
            {name: pvar.default for (name, pvar) in schemas.items()
             if pvar.fluent_type in DEFAULTED_TYPES})
        self._variable_levels = MappingProxyType(
            {name: pvar.level for (name, pvar) in schemas.items()
             if pvar.fluent_type == 'interm-fluent'})

        self._non_fluents = tuple(by_type['non-fluent'])
        self._state_fluents = tuple(by_type['state-fluent'])
        self._action_fluents = tuple(by_type['action-fluent'])
        self._interm_fluents = tuple(by_type['interm-fluent'])
        self._observ_fluents = tuple(by_type['observ-fluent'])
        self._next_state = MappingProxyType(
            {name: name + PRIME for name in self._state_fluents})

    def _extract_cpfs(self):
        PRIME = RDDLPlanningModel.NEXT_STATE_SYM
        cpfs = {}
        for cpf in self._AST.domain.cpfs:
            name = cpf.name
            if name in cpfs:
                raise RDDLRepeatedVariableError(
                    f'CPF <{name}> is defined more than once.')

            # check the variable being defined
            var_type = self._variable_types.get(name, None)
            if var_type is None:
                raise RDDLUndefinedCPFError(
                    f'CPF <{name}> is not a valid variable, '
                    f'must be one of {set(self._variable_types.keys())}.')
            elif var_type == 'state-fluent':
                raise RDDLInvalidDependencyInCPFError(
                    f'CPF definition for state-fluent <{name}> is not valid, '
                    f'did you mean <{name}{PRIME}>?')
            elif var_type not in {'next-state-fluent', 'interm-fluent',
                                  'observ-fluent'}:
                raise RDDLInvalidDependencyInCPFError(
                    f'CPF can not be defined for {var_type} <{name}>.')

            # check the parameters
            params = cpf.params
            ptypes = self._variable_params[name]
            if len(params) != len(ptypes):
                raise RDDLInvalidNumberOfArgumentsError(
                    f'CPF <{name}> expects {len(ptypes)} parameter(s), '
                    f'got {len(params)}.')
            for param in params:
                if not isinstance(param, str) \
                or not RDDLPlanningModel.is_free_object(param):
                    raise RDDLInvalidObjectError(
                        f'Parameter <{param}> of CPF <{name}> must be a free '
                        f'parameter such as ?x.')
            if len(set(params)) != len(params):
                raise RDDLRepeatedVariableError(
                    f'Repeated parameter(s) {params} in definition of CPF <{name}>.')

            if not isinstance(cpf.expr, Expression):
                raise RDDLTypeError(
                    f'CPF <{name}> must be defined by an expression, '
                    f'got {cpf.expr!r}.')
            cpfs[name] = (list(zip(params, ptypes)), cpf.expr)

        # every derived layer must be defined
        required = [self._next_state[name] for name in self._state_fluents]
        required.extend(self._interm_fluents)
        required.extend(self._observ_fluents)
        for name in required:
            if name not in cpfs:
                raise RDDLMissingCPFDefinitionError(
                    f'{self._variable_types[name]} CPF <{name}> is not defined '
                    f'in cpfs {{...}} block.')

        reward = self._AST.domain.reward
        if not isinstance(reward, Expression):
            raise RDDLMissingCPFDefinitionError(
                'Reward function is not defined in domain.')

        self._cpfs = MappingProxyType(cpfs)
        self._reward = reward

    def _extract_constraints(self):
        domain = self._AST.domain
        self._constraints = tuple(domain.constraints or [])
        self._preconditions = tuple(domain.preconds or [])
        self._invariants = tuple(domain.invariants or [])
        self._terminations = tuple(domain.terminals or [])

    def _extract_horizon(self):
        horizon = self._AST.instance.horizon
        if isinstance(horizon, bool) or not isinstance(horizon, int) or horizon < 0:
            raise RDDLValueOutOfRangeError(
                f'Horizon must be a non-negative integer, got {horizon}.')
        self._horizon = horizon

    def _extract_discount(self):
        discount = self._AST.instance.discount
        if isinstance(discount, bool) or not isinstance(discount, (int, float)) \
        or not (0 <= discount <= 1):
            raise RDDLValueOutOfRangeError(
                f'Discount factor must be a real number in [0, 1], got {discount}.')
        self._discount = float(discount)

    def _extract_max_actions(self):
        num_actions = sum(
            len(list(self.ground_types(self._variable_params[action])))
            for action in self._action_fluents)
        max_actions = self._AST.instance.max_nondef_actions
        if max_actions is None or max_actions == 'pos-inf':
            max_actions = num_actions
        elif isinstance(max_actions, bool) or not isinstance(max_actions, int) \
        or max_actions < 0:
            raise RDDLValueOutOfRangeError(
                f'max-nondef-actions must be a non-negative integer or pos-inf, '
                f'got {max_actions}.')
        self._max_allowed_actions = max_actions

    def _extract_initializers(self):
        self._init_non_fluents = tuple(self._AST.non_fluents.init_non_fluent or [])
        self._init_states = tuple(self._AST.instance.init_state or [])

    def _check_requirements(self):
        reqs = self._requirements
        if not reqs:
            return

        def _require(req, needed, what):
            if needed and req not in reqs:
                raise RDDLRequirementError(
                    f'Domain <{self.domain_name}> uses {what} but does not '
                    f'declare requirement <{req}>.')

        ranges = set(self._variable_ranges.values())
        _require('continuous', 'real' in ranges, 'real-valued variables')
        _require('integer-valued', 'int' in ranges, 'integer-valued variables')
        _require('multivalued', bool(ranges & self._enum_types),
                 'enum-valued variables')
        _require('intermediate-nodes', bool(self._interm_fluents),
                 'interm-fluents')
        _require('partially-observed', bool(self._observ_fluents),
                 'observ-fluents')
        _require('constrained-state',
                 bool(self._constraints or self._preconditions or self._invariants),
                 'state-action constraints')
        _require('concurrent', self._max_allowed_actions > 1,
                 'more than one concurrent action')
