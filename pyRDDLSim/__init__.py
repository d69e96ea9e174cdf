from pyRDDLSim.core.engine import build
from pyRDDLSim.core.env import RDDLEnv


def make(domain, non_fluents, instance, allow_synchronous_state=True,
         logger=None, **env_kwargs) -> RDDLEnv:
    '''Compiles the given RDDL blocks and wraps them in a gym environment.'''
    compiled = build(domain, non_fluents, instance,
                     allow_synchronous_state=allow_synchronous_state,
                     logger=logger)
    return RDDLEnv(compiled, **env_kwargs)


__all__ = ['build', 'make', 'RDDLEnv']
