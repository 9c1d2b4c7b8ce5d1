import random

import numpy as np
import torch


def seed_all(seed: int) -> int:
    """Seed torch, numpy and ``random``; return *seed*.

    The returned value can be passed on as the ``seed`` solver entry so
    the Brownian motion of a stochastic layer is fixed as well.
    """
    seed = int(seed)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    return seed
