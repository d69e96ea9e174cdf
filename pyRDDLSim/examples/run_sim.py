'''In this example, a random policy is evaluated on a ring of SysAdmin
computers through the gym interface.

The syntax for running this example is:

    python run_sim.py [<computers>] [<episodes>] [<seed>]

where:
    <computers> is the number of computers in the ring (defaults to 8)
    <episodes> is a positive integer for the number of episodes to simulate
    (defaults to 1)
    <seed> is a positive integer RNG key (defaults to 42)
'''
import sys

import numpy as np

import pyRDDLSim
from pyRDDLSim.examples.sysadmin import build_sysadmin


def main(computers=8, episodes=1, seed=42):

    # create the environment
    env = pyRDDLSim.make(*build_sysadmin(computers))
    rng = np.random.default_rng(seed)
    actions = list(env.action_space.keys())

    for episode in range(episodes):
        env.reset(seed=seed + episode)
        total_reward, done = 0.0, False
        while not done:

            # reboot one random computer with probability 1/2
            action = {}
            if rng.random() < 0.5:
                action[actions[rng.integers(len(actions))]] = 1
            _, reward, terminated, truncated, info = env.step(action)
            total_reward += reward
            done = terminated or truncated
            print(f'step   = {info["timestep"]}\n'
                  f'action = {action}\n'
                  f'reward = {reward}\n')
        print(f'episode {episode} ended with return {total_reward}, '
              f'discounted {env.total_reward}')

    env.close()


if __name__ == "__main__":
    args = sys.argv[1:]
    kwargs = {}
    if len(args) >= 1: kwargs['computers'] = int(args[0])
    if len(args) >= 2: kwargs['episodes'] = int(args[1])
    if len(args) >= 3: kwargs['seed'] = int(args[2])
    main(**kwargs)
