"""
XOR Training Script

Trains a 2-4-1 tanh/logistic network on XOR with the bunchnet runtime.

Usage:
    python train_xor.py
    python train_xor.py --epochs 500 --lr 0.3 --momentum 0.5
    python train_xor.py --config conf/config.yaml --use_cuda
"""

import os
import sys
import time
import logging
import argparse
import numpy as np

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from bunchnet import all_all_stack, MSELossFunction, Trainer, ANNError, load_config

# =============================================================================
# CONFIG
# =============================================================================
CONFIG_PATH = os.path.join(os.path.dirname(__file__), 'conf', 'config.yaml')

TOPOLOGY = [2, 4, 1]
ACTIVATIONS = ['tanh', 'logistic']

XOR_INPUTS = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=np.float32)
XOR_TARGETS = np.array([[0], [1], [1], [0]], dtype=np.float32)


def train(config):
    print("=" * 60)
    print("XOR Training")
    print("=" * 60)

    net = all_all_stack(TOPOLOGY, ACTIVATIONS, name='xor')
    trainer = Trainer(net, MSELossFunction(TOPOLOGY[-1]), config)
    trainer.build(TOPOLOGY[0], TOPOLOGY[-1])
    trainer.randomize_weights(np.random.default_rng(config.seed))
    print(f"Topology: {TOPOLOGY}, Weight matrices: {len(trainer.weights_dict)}")

    start = time.time()
    history = trainer.fit(XOR_INPUTS, XOR_TARGETS)
    print(f"Training done. Final Loss: {history[-1]:.6f}, Time: {time.time() - start:.1f}s")

    preds = trainer.predict(XOR_INPUTS)
    for x, y in zip(XOR_INPUTS, preds):
        print(f"  {x.tolist()} -> {float(y[0]):.4f}")
    return history


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument('--config', type=str, default=CONFIG_PATH)
    parser.add_argument('--epochs', type=int, default=None)
    parser.add_argument('--bunch_size', type=int, default=None)
    parser.add_argument('--lr', type=float, default=None)
    parser.add_argument('--momentum', type=float, default=None)
    parser.add_argument('--use_cuda', action='store_true', default=None)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    config = load_config(args.config).update(
        epochs=args.epochs,
        bunch_size=args.bunch_size,
        learning_rate=args.lr,
        momentum=args.momentum,
        use_cuda=args.use_cuda,
    )

    try:
        train(config)
    except ANNError as e:
        print(f"[ERROR] Training aborted: {e}")
        sys.exit(1)
