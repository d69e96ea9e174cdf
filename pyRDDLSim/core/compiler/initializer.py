import numpy as np
from typing import Dict, Optional

from pyRDDLSim.core.compiler.model import RDDLPlanningModel
from pyRDDLSim.core.debug.exception import (
    raise_warning,
    RDDLTypeError,
    RDDLUndeclaredGroundVariableError,
    RDDLUndefinedVariableError
)
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.grounder import RDDLGrounder

Value = object


class RDDLValueInitializer:
    '''Compiles all initial values in pvariables scope and init-fluents scope
    in a RDDL domain + instance to a mapping from ground variables to values.
    '''

    def __init__(self, rddl: RDDLPlanningModel,
                 grounder: RDDLGrounder,
                 logger: Optional[Logger]=None) -> None:
        '''Creates a new object to compile initial values from a RDDL model.
        Every ground non-fluent, state and action variable receives a value:
        its schema default unless overridden in the non-fluents or instance
        block.

        :param rddl: the RDDL model whose initial values to extract
        :param grounder: the grounder holding the ground variables of rddl
        :param logger: to log information about initial values to file
        '''
        self.rddl = rddl
        self.grounder = grounder
        self.logger = logger

    def initialize(self) -> Dict[str, Value]:
        '''Compiles the initial values of all ground non-fluents, states and
        actions. A dictionary is returned with grounded names as keys.'''
        rddl = self.rddl

        # defaults of non-fluents, state and action fluents
        init_values = {}
        for var in rddl.non_fluents + rddl.state_fluents + rddl.action_fluents:
            prange = rddl.variable_ranges[var]
            default = self.cast(rddl.variable_defaults[var], prange, var)
            for name in self.grounder.groundings(var):
                init_values[name] = default

        # sparse overrides
        self._apply_overrides(init_values, rddl.init_non_fluents,
                              'non-fluent', 'non-fluents')
        self._apply_overrides(init_values, rddl.init_states,
                              'state-fluent', 'init-state')

        if self.logger is not None:
            counts = '\n\t'.join(
                f'{ftype}: {len(names)} ground variables'
                for (ftype, names) in (('non-fluent', rddl.non_fluents),
                                       ('state-fluent', rddl.state_fluents),
                                       ('action-fluent', rddl.action_fluents)))
            self.logger.log(f'[info] initializing pvariable values:\n'
                            f'\t{counts}\n')
        return init_values

    def _apply_overrides(self, init_values, overrides, fluent_type, block):
        rddl = self.rddl
        assigned = set()
        for ((var, objects), value) in overrides:

            # check the variable is declared and of the right type
            var_type = rddl.variable_types.get(var, None)
            if var_type is None:
                raise RDDLUndefinedVariableError(
                    f'Variable <{var}> referenced in {block} block is not '
                    f'defined in the domain.')
            if var_type != fluent_type:
                raise RDDLUndeclaredGroundVariableError(
                    f'{var_type} <{var}> can not be initialized in {block} '
                    f'block, only {fluent_type}s are allowed.')

            # check the objects match the parameter types
            objects = list(map(RDDLPlanningModel.strip_literal, objects or []))
            if not rddl.is_compatible(var, objects):
                raise RDDLUndeclaredGroundVariableError(
                    f'Ground variable <{var}{tuple(objects)}> in {block} block '
                    f'does not match parameter types {rddl.variable_params[var]}.')

            name = RDDLPlanningModel.ground_var(var, objects)
            if name in assigned:
                raise_warning(
                    f'Ground variable <{name}> is initialized more than once '
                    f'in {block} block, the last value is used.')
            assigned.add(name)
            init_values[name] = self.cast(value, rddl.variable_ranges[var], name)

    # ===========================================================================
    # value coercion
    # ===========================================================================

    def cast(self, value: Value, prange: str, var: str='') -> Value:
        '''Casts a value to the given range, raising an error if the value is
        of an incompatible kind. Booleans are never cast to numbers here.

        :param value: the value to cast
        :param prange: the range: bool, int, real or an enumerated type
        :param var: name of the variable receiving the value, for errors
        '''
        if prange == 'bool':
            if isinstance(value, (bool, np.bool_)):
                return bool(value)

        elif prange == 'int':
            if isinstance(value, (int, np.integer)) \
            and not isinstance(value, (bool, np.bool_)):
                return int(value)

        elif prange == 'real':
            if isinstance(value, (int, float, np.integer, np.floating)) \
            and not isinstance(value, (bool, np.bool_)):
                return float(value)

        elif prange in self.rddl.enum_types:
            if isinstance(value, str):
                label = RDDLPlanningModel.strip_literal(value)
                if self.rddl.object_to_type.get(label, None) == prange:
                    return label

        else:
            raise RDDLTypeError(
                f'Range <{prange}> of variable <{var}> is not valid.')

        raise RDDLTypeError(
            f'Value {value!r} of type <{type(value).__name__}> can not be '
            f'assigned to variable <{var}> of range <{prange}>.')
