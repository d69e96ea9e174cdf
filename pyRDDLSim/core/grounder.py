from typing import Dict, List, NamedTuple, Optional, Tuple

from pyRDDLSim.core.compiler.model import RDDLPlanningModel
from pyRDDLSim.core.debug.exception import (
    RDDLRepeatedVariableError,
    RDDLUndefinedVariableError
)
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.parser.expr import Expression


class RDDLGroundCPF(NamedTuple):
    '''A single entry of the ground evaluation plan: the lifted CPF name, the
    ground variable it assigns, the binding of the CPF parameters to objects,
    the defining expression and the range the result is cast to.'''
    cpf: str
    name: str
    objects: Dict[str, str]
    expr: Expression
    prange: str


class RDDLGrounder:
    '''Enumerates the ground instances of every parameterized variable in a
    RDDL model and produces the ground evaluation plan of its CPFs. The lifted
    expressions are shared by all groundings of a CPF; only the binding of
    the parameters changes.
    '''

    def __init__(self, rddl: RDDLPlanningModel,
                 logger: Optional[Logger]=None) -> None:
        '''Creates a new grounder object for the specified RDDL model.

        :param rddl: the lifted RDDL model to ground
        :param logger: to log information about groundings to file
        '''
        self.rddl = rddl
        self.logger = logger

        self.variable_groundings = {}
        self.variable_base_pvars = {}
        self.variable_objects = {}

    def ground(self) -> 'RDDLGrounder':
        '''Enumerates for every variable the Cartesian product of its
        parameter domains in declared order, the last parameter varying
        fastest. Every grounded name maps back to (variable, objects).'''
        rddl = self.rddl
        groundings, base_pvars, objects = {}, {}, {}
        for (var, pvar) in rddl.variables.items():
            grounded = []
            for args in rddl.ground_types(pvar.param_types):
                name = RDDLPlanningModel.ground_var(var, args)
                if name in base_pvars:
                    raise RDDLRepeatedVariableError(
                        f'Ground variable <{name}> of <{var}> has the same name '
                        f'as a grounding of <{base_pvars[name]}>.')
                grounded.append(name)
                base_pvars[name] = var
                objects[name] = args
            groundings[var] = grounded

        self.variable_groundings = groundings
        self.variable_base_pvars = base_pvars
        self.variable_objects = objects

        if self.logger is not None:
            counts = '\n\t'.join(f'{rddl.variables[var]!r}: {len(names)}'
                                 for (var, names) in groundings.items())
            self.logger.log(f'[info] grounded pvariables:\n\t{counts}\n')
        return self

    def groundings(self, var: str) -> List[str]:
        '''Returns the grounded names of the given lifted variable.'''
        names = self.variable_groundings.get(var, None)
        if names is None:
            raise RDDLUndefinedVariableError(
                f'Variable <{var}> is not defined, must be one of '
                f'{set(self.variable_groundings.keys())}.')
        return names

    def parse(self, name: str) -> Tuple[str, Tuple[str, ...]]:
        '''Returns the (variable, objects) pair identifying a ground variable.'''
        var = self.variable_base_pvars.get(name, None)
        if var is None:
            raise RDDLUndefinedVariableError(
                f'Ground variable <{name}> is not defined.')
        return var, self.variable_objects[name]

    def ground_cpfs(self, levels: Dict[int, List[str]]) -> List[RDDLGroundCPF]:
        '''Produces the ground evaluation plan: for each CPF in stratified
        order, one entry per grounding with its parameter binding.

        :param levels: the ordered strata as computed by RDDLLevelAnalysis
        '''
        rddl = self.rddl
        plan = []
        for cpfs in levels.values():
            for cpf in cpfs:
                params, expr = rddl.cpfs[cpf]
                pnames = [pname for (pname, _) in params]
                prange = rddl.variables[cpf].range
                for name in self.groundings(cpf):
                    binding = dict(zip(pnames, self.variable_objects[name]))
                    plan.append(RDDLGroundCPF(cpf, name, binding, expr, prange))

        if self.logger is not None:
            self.logger.log(f'[info] ground evaluation plan has '
                            f'{len(plan)} entries.\n')
        return plan
