"""
Taxi Fare Prediction - Main Runner
==================================
csv 운행 기록으로 부스팅 트리 모델 학습 > 평가 > 샘플 예측,
또는 저장된 모델 로드 > 샘플 예측

    python run_fare_prediction.py train
    python run_fare_prediction.py predict --model-path Data/model.json
"""

import argparse
import logging
import os
import sys

from taxi_fare.errors import ConfigurationError, DataFormatError, ModelLoadError
from taxi_fare.gradient_boosting import BoostingConfig
from taxi_fare.pipeline import PipelineConfig, load_and_predict, train_evaluate_predict

# =============================================================================
# Configuration
# =============================================================================

CONFIG = {
    'train_path': os.path.join('Data', 'taxi-fare-train.csv'),
    'test_path': os.path.join('Data', 'taxi-fare-test.csv'),
    'model_path': os.path.join('Data', 'model.json'),
    'plot_dir': None,

    # 부스팅 하이퍼파라미터
    'num_trees': 100,
    'learning_rate': 0.2,
    'max_depth': 4,
    'min_leaf_size': 10,

    'random_seed': 0,
}

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Taxi fare prediction with boosted regression trees")
    p.add_argument("mode", nargs="?", choices=["train", "predict"], default="train",
                   help="train: train/evaluate/predict, predict: load saved model and predict")

    p.add_argument("--train-path", type=str, default=CONFIG['train_path'])
    p.add_argument("--test-path", type=str, default=CONFIG['test_path'])
    p.add_argument("--model-path", type=str, default=CONFIG['model_path'])
    p.add_argument("--plot-dir", type=str, default=CONFIG['plot_dir'])

    p.add_argument("--num-trees", type=int, default=CONFIG['num_trees'])
    p.add_argument("--learning-rate", type=float, default=CONFIG['learning_rate'])
    p.add_argument("--max-depth", type=int, default=CONFIG['max_depth'])
    p.add_argument("--min-leaf-size", type=int, default=CONFIG['min_leaf_size'])
    p.add_argument("--seed", type=int, default=CONFIG['random_seed'])

    p.add_argument("-v", "--verbose", action="store_true",
                   help="부스팅 진행 상황 출력 (트리 수의 10%%마다)")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig(
        train_path=args.train_path,
        test_path=args.test_path,
        model_path=args.model_path,
        plot_dir=args.plot_dir,
        boosting=BoostingConfig(
            num_trees=args.num_trees,
            learning_rate=args.learning_rate,
            max_depth=args.max_depth,
            min_leaf_size=args.min_leaf_size,
            seed=args.seed,
        ),
        verbose=1 if args.verbose else 0,
    )


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        stream=sys.stdout,
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    config = build_config(args)

    print("=" * 70)
    print("Taxi Fare Prediction")
    print("=" * 70)

    try:
        if args.mode == "train":
            print("Read csv > train model > evaluate > predict samples")
            train_evaluate_predict(config)
        else:
            print("Load trained model > predict samples")
            load_and_predict(config)
    except (DataFormatError, ConfigurationError, ModelLoadError, FileNotFoundError) as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
