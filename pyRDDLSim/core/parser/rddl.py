# This file is based on thiago pbueno's pyrddl.
# https://github.com/thiagopbueno/pyrddl
# it was adapted and extended for pyRDDLSim

from typing import Dict, List, Optional, Sequence, Tuple, Union

from pyRDDLSim.core.parser.cpf import CPF
from pyRDDLSim.core.parser.expr import Expression
from pyRDDLSim.core.parser.pvariable import PVariable

Type = Tuple[str, Union[str, List[str]]]
FluentTuple = Tuple[str, Optional[List[str]]]
Value = Union[bool, int, float, str]
FluentInitializer = Tuple[FluentTuple, Value]
FluentInitializerList = List[FluentInitializer]
ObjectsList = List[Tuple[str, List[str]]]


class Domain(object):
    '''Domain class for accessing RDDL domain sections.
    Args:
        name: Name of RDDL domain.
        requirements: List of RDDL requirements.
        sections: Mapping from string to domain section.
    Attributes:
        name (str): Domain identifier.
        requirements (List[str]): List of requirements.
        types (List[:obj:`Type`]): List of types, each either (name, 'object')
        or (name, [@label, ...]).
        pvariables (List[:obj:`PVariable`]): List of parameterized variables.
        cpfs (List[:obj:`CPF`]): List of Conditional Probability Functions.
        reward (:obj:`Expression`): Reward function.
        constraints (List[:obj:`Expression`]): List of state-action constraints.
        preconds (List[:obj:`Expression`]): List of action preconditions.
        invariants (List[:obj:`Expression`]): List of state invariants.
        terminals (List[:obj:`Expression`]): List of termination conditions.
    '''

    def __init__(self, name: str, requirements: List[str], sections: Dict[str, Sequence]) -> None:
        self.name = name
        self.requirements = requirements

        self.pvariables = sections['pvariables']
        self.cpfs = sections['cpfs']
        self.reward = sections['reward']

        self.types = sections.get('types', [])
        self.constraints = sections.get('constraints', [])
        self.preconds = sections.get('preconds', [])
        self.invariants = sections.get('invariants', [])
        self.terminals = sections.get('terminals', [])


class NonFluents(object):
    '''NonFluents class for accessing RDDL non-fluents sections.
    Args:
        name: Name of RDDL non-fluents.
        sections: Mapping from string to non-fluents section.
    Attributes:
        name (str): Name of RDDL non-fluents block.
        domain (str): Name of RDDL domain block.
        objects (:obj:`ObjectsList`): List of RDDL objects for each type.
        init_non_fluent (:obj:`FluentInitializerList`): List of non-fluent initializers.
    '''

    def __init__(self, name: str, sections: Dict[str, Sequence]) -> None:
        self.name = name
        self.domain = None
        self.objects = []
        self.init_non_fluent = []
        self.__dict__.update(sections)


class Instance(object):
    '''Instance class for accessing RDDL instance sections.
    Args:
        name: Name of RDDL instance.
        sections: Mapping from string to instance section.
    Attributes:
        name (str): Name of RDDL instance block.
        domain (str): Name of RDDL domain block.
        non_fluents (str): Name of RDDL non-fluents block.
        objects (:obj:`ObjectsList`): Objects that extend the non-fluents block.
        init_state (:obj:`FluentInitializerList`): List of state fluent initializers.
        max_nondef_actions (Union[int, str]): Maximum number of non-default
        actions per step, or 'pos-inf'.
        horizon (int): Number of decision steps.
        discount (float): Discount factor.
    '''

    def __init__(self, name: str, sections: Dict[str, Sequence]) -> None:
        self.name = name
        self.domain = None
        self.non_fluents = None
        self.objects = []
        self.init_state = []
        self.max_nondef_actions = 'pos-inf'
        self.horizon = None
        self.discount = None
        self.__dict__.update(sections)


class RDDL(object):
    '''RDDL class for accessing RDDL sections.
    Args:
        blocks: Mapping from string to RDDL block.
    Attributes:
        domain (:obj:`Domain`): RDDL domain block.
        non_fluents (:obj:`NonFluents`): RDDL non-fluents block.
        instance (:obj:`Instance`): RDDL instance block.
    '''

    def __init__(self, blocks: Dict[str, object]) -> None:
        self.domain = blocks['domain']
        self.non_fluents = blocks['non_fluents']
        self.instance = blocks['instance']


__all__ = ['CPF', 'Domain', 'Expression', 'Instance', 'NonFluents', 'PVariable', 'RDDL']
