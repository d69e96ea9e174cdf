import numpy as np
from typing import Iterable, Iterator, Optional

# seeds passed to RDDLSimulationDriver.reset are kept in int32 range
MAX_INT_32 = 2 ** 31 - 1


def fibonacci_seeds() -> Iterator[int]:
    '''Yields 1, 2, 3, 5, 8, ... wrapped to the int32 range, so that repeated
    runs of an environment replay the same sequence of trajectories.'''
    a, b = 1, 2
    while True:
        yield a
        a, b = b % MAX_INT_32, (a + b) % MAX_INT_32


class RDDLTrajectorySeeds:
    '''Supplies the seed of each new trajectory of a driver.

    Seeds come from the given iterable if any; otherwise each trajectory
    receives a statistically independent seed spawned from one root
    numpy SeedSequence, whose entropy is drawn from the OS unless given.
    '''

    def __init__(self, seeds: Optional[Iterable[int]]=None,
                 entropy: Optional[int]=None) -> None:
        '''Creates a new seed supply.

        :param seeds: explicit seeds to hand out in order
        :param entropy: the entropy of the root SeedSequence, ignored when
        seeds are given
        '''
        self._root = np.random.SeedSequence(entropy)
        self._seeds = None if seeds is None else iter(seeds)

    @property
    def entropy(self) -> int:
        '''The root entropy, which reproduces the same spawned seeds.'''
        return self._root.entropy

    def __iter__(self):
        return self

    def __next__(self) -> int:
        if self._seeds is not None:
            seed = next(self._seeds)
        else:
            child, = self._root.spawn(1)
            seed = child.generate_state(1)[0]
        seed = int(seed)
        if not 0 <= seed < MAX_INT_32:
            seed %= MAX_INT_32
        return seed
