"""Reproducible seeding for inference runs."""

import os
import random

import numpy as np
import torch
from transformers import set_seed


def seed_everything(seed: int) -> None:
    """Seed python, numpy, torch and transformers; make cudnn deterministic."""
    os.environ["PYTHONHASHSEED"] = str(seed)
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    set_seed(seed)
    torch.backends.cudnn.deterministic = True
    torch.backends.cudnn.benchmark = False
