from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from pyRDDLSim.core.compiler.initializer import RDDLValueInitializer
from pyRDDLSim.core.compiler.levels import RDDLLevelAnalysis
from pyRDDLSim.core.compiler.model import RDDLLiftedModel
from pyRDDLSim.core.compiler.tracer import RDDLObjectsTracer, RDDLTracedObjects
from pyRDDLSim.core.constraints import RDDLConstraintPolicy
from pyRDDLSim.core.debug.logger import Logger
from pyRDDLSim.core.driver import RDDLSimulationDriver
from pyRDDLSim.core.grounder import RDDLGroundCPF, RDDLGrounder
from pyRDDLSim.core.parser.rddl import RDDL, Domain, Instance, NonFluents


class RDDLCompiledModel:
    '''The immutable result of compiling a RDDL domain + instance: the lifted
    model, its groundings, initial values, evaluation plan and traced
    expressions. Any number of independent trajectories can be simulated
    from one compiled model.
    '''

    def __init__(self, model: RDDLLiftedModel,
                 grounder: RDDLGrounder,
                 initializer: RDDLValueInitializer,
                 init_values: Dict[str, object],
                 levels: Dict[int, List[str]],
                 plan: List[RDDLGroundCPF],
                 traced: RDDLTracedObjects,
                 logger: Optional[Logger]=None) -> None:
        self._model = model
        self._grounder = grounder
        self._initializer = initializer
        self._init_values = MappingProxyType(dict(init_values))
        self._levels = MappingProxyType({level: tuple(cpfs)
                                         for (level, cpfs) in levels.items()})
        self._plan = tuple(plan)
        self._traced = traced
        self._logger = logger
        self._noop_actions = MappingProxyType({
            name: init_values[name]
            for var in model.action_fluents
            for name in grounder.groundings(var)})

    @property
    def model(self) -> RDDLLiftedModel:
        return self._model

    @property
    def grounder(self) -> RDDLGrounder:
        return self._grounder

    @property
    def initializer(self) -> RDDLValueInitializer:
        return self._initializer

    @property
    def init_values(self) -> Mapping[str, object]:
        return self._init_values

    @property
    def levels(self) -> Mapping[int, tuple]:
        return self._levels

    @property
    def plan(self) -> tuple:
        return self._plan

    @property
    def traced(self) -> RDDLTracedObjects:
        return self._traced

    @property
    def noop_actions(self) -> Mapping[str, object]:
        return self._noop_actions

    @property
    def horizon(self) -> int:
        return self._model.horizon

    @property
    def discount(self) -> float:
        return self._model.discount

    @property
    def max_allowed_actions(self) -> int:
        return self._model.max_allowed_actions

    def new_trajectory(self, seed: Optional[int]=None,
                       constraint_policy: RDDLConstraintPolicy=RDDLConstraintPolicy.RECORD,
                       tolerance: float=1e-6) -> RDDLSimulationDriver:
        '''Creates a driver positioned at the initial state.

        :param seed: seed of the driver's random generator
        :param constraint_policy: what to do when a constraint is violated
        :param tolerance: tolerance on the sum of Discrete probabilities
        '''
        return RDDLSimulationDriver(self, seed=seed,
                                    constraint_policy=constraint_policy,
                                    tolerance=tolerance,
                                    logger=self._logger)


def build(domain: Domain, non_fluents: NonFluents, instance: Instance,
          allow_synchronous_state: bool=True,
          logger: Optional[Logger]=None) -> RDDLCompiledModel:
    '''Compiles a RDDL domain, non-fluents and instance block. All definition
    errors are raised here, before any trajectory is simulated.

    :param domain: the domain block
    :param non_fluents: the non-fluents block
    :param instance: the instance block
    :param allow_synchronous_state: whether next-state fluents can depend on
    one another
    :param logger: to log compilation information to file
    '''
    rddl = RDDL({'domain': domain, 'non_fluents': non_fluents, 'instance': instance})
    model = RDDLLiftedModel(rddl)
    grounder = RDDLGrounder(model, logger=logger).ground()
    initializer = RDDLValueInitializer(model, grounder, logger=logger)
    init_values = initializer.initialize()
    levels = RDDLLevelAnalysis(
        model, allow_synchronous_state=allow_synchronous_state,
        logger=logger).compute_levels()
    plan = grounder.ground_cpfs(levels)
    traced = RDDLObjectsTracer(model, levels, logger=logger).trace()
    return RDDLCompiledModel(model, grounder, initializer, init_values,
                             levels, plan, traced, logger=logger)
