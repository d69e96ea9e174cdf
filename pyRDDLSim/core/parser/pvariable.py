from typing import Iterable, Optional, Tuple, Union

from pyRDDLSim.core.debug.exception import RDDLTypeError, RDDLValueOutOfRangeError

FluentValue = Union[bool, int, float, str]

# fluent types declared in pvariables {..}, in the order they are stratified
FLUENT_TYPES = ('non-fluent', 'action-fluent', 'state-fluent', 'interm-fluent',
                'observ-fluent')

# fluents that must declare a default value
DEFAULTED_TYPES = frozenset({'non-fluent', 'state-fluent', 'action-fluent'})

NEXT_STATE_TYPE = 'next-state-fluent'


class PVariable(object):
    '''Schema of a parameterized variable as declared in pvariables {..}.

    Args:
        name (str): Name of fluent.
        fluent_type (str): One of FLUENT_TYPES, or next-state-fluent for the
        primed copy of a state fluent.
        range_type (str): Range of fluent, a primitive or enumerated type.
        param_types (Iterable[str]): Object types of the parameters.
        default (Optional[FluentValue]): Default value of the fluent.
        level (Optional[int]): Level of an interm-fluent.
    '''

    def __init__(self,
            name: str,
            fluent_type: str,
            range_type: str,
            param_types: Optional[Iterable[str]]=None,
            default: Optional[FluentValue]=None,
            level: Optional[int]=None) -> None:
        self.name = name
        self.fluent_type = fluent_type
        self.range = range_type
        self.param_types: Tuple[str, ...] = tuple(param_types or ())
        self.default = default
        self.level = level

    @property
    def arity(self) -> int:
        return len(self.param_types)

    def validate(self) -> None:
        '''Checks the parts of the declaration that do not depend on the other
        declarations of the domain: type, default value and level.'''
        name, ftype = self.name, self.fluent_type
        if ftype not in FLUENT_TYPES:
            raise RDDLTypeError(
                f'Type <{ftype}> of variable <{name}> is not valid, '
                f'must be one of {set(FLUENT_TYPES)}.')
        if ftype in DEFAULTED_TYPES and self.default is None:
            raise RDDLTypeError(f'{ftype} <{name}> must define a default value.')
        if ftype == 'interm-fluent':
            level = self.level
            if isinstance(level, bool) or not isinstance(level, int) or level < 1:
                raise RDDLValueOutOfRangeError(
                    f'Level of interm-fluent <{name}> must be an integer '
                    f'>= 1, got {level}.')

    def next_state(self, prime: str) -> 'PVariable':
        '''Returns the schema of the primed copy of this state fluent.

        :param prime: the symbol appended to the name, e.g. '
        '''
        if self.fluent_type != 'state-fluent':
            raise RDDLTypeError(
                f'Only state-fluents have a next state, <{self.name}> is '
                f'a {self.fluent_type}.')
        return PVariable(self.name + prime, NEXT_STATE_TYPE, self.range,
                         self.param_types)

    def __str__(self) -> str:
        return '{}/{}'.format(self.name, self.arity)

    def __repr__(self) -> str:
        if not self.param_types:
            return self.name
        return '{}({})'.format(self.name, ','.join(self.param_types))
