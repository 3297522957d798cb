"""
Taxi Fare From Scratch - 파이프라인 검증 테스트
===============================================

테스트 항목:
1. CSV 로딩과 형식 오류 처리
2. One-Hot 인코더 레이아웃, 미지 카테고리
3. 평가 지표 (sklearn과의 일관성)
4. 모델 저장/로드 왕복
5. 학습 > 평가 > 예측 전체 흐름

Author: Taxi Fare From Scratch Project
"""

import json
import os
import tempfile
import warnings

import matplotlib
matplotlib.use('Agg')

import numpy as np
import pytest
from sklearn.metrics import mean_squared_error, r2_score

from taxi_fare import (
    BoostingConfig,
    DataFormatError,
    FeatureEncoder,
    GradientBoostingTrainer,
    ModelLoadError,
    TripRecord,
    evaluate,
    load_model,
    load_trips,
    relative_error,
    save_model,
)
from taxi_fare.dataset import frame_to_records, records_to_frame, target_vector
from taxi_fare.evaluation import regression_metrics
from taxi_fare.pipeline import (
    SAMPLE_TRIPS,
    PipelineConfig,
    load_and_predict,
    score_samples,
    train_evaluate_predict,
)

from synthetic import make_trip_frame, write_trip_csv

HEADER = "vendor_id,rate_code,passenger_count,trip_time_in_secs,trip_distance,payment_type,fare_amount\n"

THREE_TRIPS = [
    TripRecord('VTS', '1', 1, 1140, 3.75, 'CRD', 15.5),
    TripRecord('VTS', '1', 1, 1260, 10.33, 'CSH', 29.5),
    TripRecord('VTS', '1', 3, 480, 1.9, 'CRD', 8.5),
]


def _write(tmpdir: str, name: str, text: str) -> str:
    path = os.path.join(tmpdir, name)
    with open(path, 'w', encoding='utf-8') as f:
        f.write(text)
    return path


def _small_model(seed: int = 0):
    frame = make_trip_frame(n=400, seed=seed)
    encoder = FeatureEncoder()
    encoder.fit_frame(frame)
    model = GradientBoostingTrainer(
        BoostingConfig(num_trees=15, max_depth=3, min_leaf_size=5)
    ).train(encoder.transform_frame(frame), target_vector(frame), encoder=encoder)
    return model, frame


# =============================================================================
# 1. CSV 로딩
# =============================================================================

def test_load_trips():
    """정상 CSV 로딩"""
    print("=" * 50)
    print("Test: Load Trips")
    print("=" * 50)

    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, 'trips.csv', HEADER +
                      "VTS,1,1,1140,3.75,CRD,15.5\n"
                      "CMT,5,2,600,1.1,CSH,6.0\n")
        frame = load_trips(path)

    assert len(frame) == 2
    assert list(frame['vendor_id']) == ['VTS', 'CMT']
    assert list(frame['rate_code']) == ['1', '5']
    assert frame['trip_distance'].dtype == np.float64
    assert frame['fare_amount'].tolist() == [15.5, 6.0]

    records = frame_to_records(frame)
    assert records[0] == TripRecord('VTS', '1', 1.0, 1140.0, 3.75, 'CRD', 15.5)

    print(f"  ✓ {len(frame)}건 로딩")


def test_load_trips_extra_column_row():
    """컬럼이 많은 행 -> DataFormatError (라인 번호 포함)"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, 'bad.csv', HEADER +
                      "VTS,1,1,1140,3.75,CRD,15.5\n"
                      "VTS,1,1,1140,3.75,CRD,15.5,99\n"
                      "VTS,1,1,1140,3.75,CRD,15.5\n")
        with pytest.raises(DataFormatError) as exc_info:
            load_trips(path)

    assert exc_info.value.row == 3


def test_load_trips_missing_column_row():
    """컬럼이 모자란 행 -> DataFormatError"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, 'short.csv', HEADER +
                      "VTS,1,1,1140,3.75,CRD,15.5\n"
                      "VTS,1,1,1140,3.75,CRD,15.5\n"
                      "VTS,1,1,1140,3.75,CRD\n")
        with pytest.raises(DataFormatError) as exc_info:
            load_trips(path)

    assert exc_info.value.row == 4


def test_load_trips_non_numeric():
    """숫자 컬럼에 비숫자 값 -> DataFormatError, 부분 결과 없음"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, 'text.csv', HEADER +
                      "VTS,1,1,1140,3.75,CRD,15.5\n"
                      "VTS,1,one,1140,3.75,CRD,15.5\n")
        with pytest.raises(DataFormatError) as exc_info:
            load_trips(path)

    assert exc_info.value.row == 3
    assert 'passenger_count' in str(exc_info.value)


def test_load_trips_extra_field_every_row():
    """모든 행이 헤더보다 필드가 하나 많음 -> 첫 데이터 행에서 DataFormatError"""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = _write(tmpdir, 'wide.csv', HEADER +
                      "7,VTS,1,1,1140,3.75,CRD,15.5\n"
                      "9,CMT,1,2,600,1.1,CSH,6.0\n")
        with pytest.raises(DataFormatError) as exc_info:
            load_trips(path)

    assert exc_info.value.row == 2


def test_load_trips_invalid_utf8():
    """UTF-8이 아닌 바이트 -> DataFormatError, 실행 스크립트는 종료 코드 1"""
    import run_fare_prediction

    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, 'latin.csv')
        with open(path, 'wb') as f:
            f.write(HEADER.encode('utf-8'))
            f.write(b"VTS,1,1,1140,3.75,CRD,15.5\n")
            f.write(b"V\xffS,1,1,1140,3.75,CRD,15.5\n")

        with pytest.raises(DataFormatError) as exc_info:
            load_trips(path)
        assert exc_info.value.row == 3

        code = run_fare_prediction.main([
            'train',
            '--train-path', path,
            '--model-path', os.path.join(tmpdir, 'model.json'),
        ])
        assert code == 1


def test_load_trips_missing_file():
    with pytest.raises(FileNotFoundError):
        load_trips(os.path.join(tempfile.gettempdir(), 'no-such-trips.csv'))


# =============================================================================
# 2. 인코더
# =============================================================================

def test_encoder_layout():
    """[vendor | rate | passenger_count | trip_distance | payment] 레이아웃"""
    print("\n" + "=" * 50)
    print("Test: Encoder Layout")
    print("=" * 50)

    encoder = FeatureEncoder()
    vocabularies = encoder.fit(THREE_TRIPS)

    assert vocabularies['vendor_id'].categories == ('VTS',)
    assert vocabularies['rate_code'].categories == ('1',)
    assert vocabularies['payment_type'].categories == ('CRD', 'CSH')
    assert encoder.n_features == 6
    assert encoder.feature_names == [
        'vendor_id=VTS', 'rate_code=1', 'passenger_count', 'trip_distance',
        'payment_type=CRD', 'payment_type=CSH',
    ]

    assert encoder.transform(THREE_TRIPS[0]).tolist() == [1.0, 1.0, 1.0, 3.75, 1.0, 0.0]
    assert encoder.transform(THREE_TRIPS[1]).tolist() == [1.0, 1.0, 1.0, 10.33, 0.0, 1.0]

    print(f"  ✓ {encoder}")


def test_encoder_first_seen_order():
    """카테고리 인덱스는 처음 등장한 순서"""
    trips = [
        TripRecord('CMT', '2', 1, 1, 1, 'CSH'),
        TripRecord('VTS', '1', 1, 1, 1, 'CRD'),
        TripRecord('CMT', '1', 1, 1, 1, 'NOC'),
    ]
    encoder = FeatureEncoder()
    encoder.fit(trips)

    assert encoder.vocabularies_['vendor_id'].categories == ('CMT', 'VTS')
    assert encoder.vocabularies_['rate_code'].categories == ('2', '1')
    assert encoder.vocabularies_['payment_type'].categories == ('CSH', 'CRD', 'NOC')


def test_encoder_excludes_trip_time():
    """trip_time은 피처에 영향 없음"""
    encoder = FeatureEncoder()
    encoder.fit(THREE_TRIPS)

    a = TripRecord('VTS', '1', 1, 10, 3.75, 'CRD')
    b = TripRecord('VTS', '1', 1, 99999, 3.75, 'CRD')
    assert np.array_equal(encoder.transform(a), encoder.transform(b))


def test_encoder_unseen_category():
    """보지 못한 카테고리 -> 해당 블록 전부 0, 예외 없음"""
    encoder = FeatureEncoder()
    encoder.fit(THREE_TRIPS)

    vector = encoder.transform(TripRecord('XYZ', '1', 2, 300, 1.0, 'DIS'))
    assert vector.tolist() == [0.0, 1.0, 2.0, 1.0, 0.0, 0.0]

    # 반복 호출해도 동일
    again = encoder.transform(TripRecord('XYZ', '1', 2, 300, 1.0, 'DIS'))
    assert np.array_equal(vector, again)
    assert np.array_equal(encoder.transform(THREE_TRIPS[2]), encoder.transform(THREE_TRIPS[2]))


def test_encoder_frame_matches_single():
    """transform_frame 행 == transform 결과"""
    frame = make_trip_frame(n=50, seed=2)
    encoder = FeatureEncoder()
    encoder.fit_frame(frame.iloc[:30])

    matrix = encoder.transform_frame(frame)
    rows = np.vstack([encoder.transform(r) for r in frame_to_records(frame)])
    assert np.array_equal(matrix, rows)
    assert np.array_equal(encoder.transform_many(frame_to_records(frame)), matrix)


def test_encoder_requires_fit():
    with pytest.raises(RuntimeError):
        FeatureEncoder().transform(THREE_TRIPS[0])


def test_records_frame_roundtrip():
    frame = records_to_frame(THREE_TRIPS)
    assert frame_to_records(frame) == [
        TripRecord('VTS', '1', 1.0, 1140.0, 3.75, 'CRD', 15.5),
        TripRecord('VTS', '1', 1.0, 1260.0, 10.33, 'CSH', 29.5),
        TripRecord('VTS', '1', 3.0, 480.0, 1.9, 'CRD', 8.5),
    ]


def test_numeric_category_values_match_file_text():
    """rate_code를 1.0으로 넘겨도 파일 표기 '1'과 같은 카테고리"""
    numeric = TripRecord('VTS', 1.0, 1, 1140, 3.75, 'CRD', 15.5)
    assert records_to_frame([numeric])['rate_code'].tolist() == ['1']

    encoder = FeatureEncoder()
    encoder.fit(THREE_TRIPS)
    assert np.array_equal(encoder.transform(numeric), encoder.transform(THREE_TRIPS[0]))
    assert np.array_equal(
        encoder.transform_frame(records_to_frame([numeric]))[0],
        encoder.transform(THREE_TRIPS[0])
    )


# =============================================================================
# 3. 평가 지표
# =============================================================================

def test_metrics_match_sklearn():
    """R², RMSE가 sklearn과 일치"""
    print("\n" + "=" * 50)
    print("Test: Metrics vs sklearn")
    print("=" * 50)

    rng = np.random.default_rng(0)
    y_true = rng.normal(10, 3, 200)
    y_pred = y_true + rng.normal(0, 1, 200)

    metrics = regression_metrics(y_true, y_pred)

    assert np.isclose(metrics.r_squared, r2_score(y_true, y_pred))
    assert np.isclose(metrics.rmse, np.sqrt(mean_squared_error(y_true, y_pred)))
    assert metrics.rmse >= 0
    assert metrics.n_samples == 200

    print(f"  ✓ R²: {metrics.r_squared:.4f}, RMSE: {metrics.rmse:.4f}")


def test_metrics_perfect_prediction():
    y = np.array([3.0, 5.0, 9.0])
    metrics = regression_metrics(y, y.copy())

    assert metrics.r_squared == 1.0
    assert metrics.rmse == 0.0


def test_metrics_degenerate_baseline():
    """평가 샘플 1개 -> R² NaN + RuntimeWarning"""
    with pytest.warns(RuntimeWarning):
        metrics = regression_metrics(np.array([12.0]), np.array([10.0]))

    assert np.isnan(metrics.r_squared)
    assert metrics.rmse == 2.0

    with pytest.raises(ValueError):
        regression_metrics(np.array([]), np.array([]))


def test_evaluate_model():
    model, frame = _small_model()
    X = model.encoder.transform_frame(frame)
    metrics = evaluate(model, X, target_vector(frame))

    assert metrics.rmse >= 0
    assert metrics.r_squared > 0.5


def test_relative_error():
    assert relative_error(15.5, 15.5) == 0.0
    assert np.isclose(relative_error(14.0, 20.0), 30.0)
    with pytest.raises(ValueError):
        relative_error(1.0, 0.0)


# =============================================================================
# 4. 모델 저장/로드
# =============================================================================

def test_model_save_load_roundtrip():
    """load(save(model))의 예측이 원본과 동일"""
    print("\n" + "=" * 50)
    print("Test: Model Persistence Roundtrip")
    print("=" * 50)

    model, frame = _small_model(seed=3)
    probe = make_trip_frame(n=100, seed=99)

    with tempfile.TemporaryDirectory() as tmpdir:
        path = save_model(model, os.path.join(tmpdir, 'nested', 'model.json'))
        restored = load_model(path)

    original = model.predict_frame(probe)
    loaded = restored.predict_frame(probe)
    assert np.allclose(loaded, original, rtol=1e-6, atol=0)
    assert np.array_equal(loaded, original)

    assert restored.n_trees == model.n_trees
    assert restored.encoder.vocabularies_ == model.encoder.vocabularies_
    assert restored.metadata['config']['num_trees'] == 15
    assert restored.predict_trip(SAMPLE_TRIPS[0][0]) == model.predict_trip(SAMPLE_TRIPS[0][0])

    print(f"  ✓ {restored}")


def test_model_without_encoder_roundtrip():
    rng = np.random.default_rng(8)
    X = rng.normal(size=(60, 3))
    model = GradientBoostingTrainer(BoostingConfig(num_trees=4, min_leaf_size=2)).train(X, X[:, 0])

    with tempfile.TemporaryDirectory() as tmpdir:
        restored = load_model(save_model(model, os.path.join(tmpdir, 'm.json')))

    assert restored.encoder is None
    assert np.array_equal(restored.predict(X), model.predict(X))
    with pytest.raises(RuntimeError):
        restored.predict_trip(THREE_TRIPS[0])


def test_load_model_errors():
    """없는 파일, 손상된 JSON, 다른 형식 -> ModelLoadError"""
    model, _ = _small_model()

    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ModelLoadError):
            load_model(os.path.join(tmpdir, 'missing.json'))

        with pytest.raises(ModelLoadError):
            load_model(_write(tmpdir, 'corrupt.json', '{"format": "taxi-fare-gbrt", '))

        with pytest.raises(ModelLoadError):
            load_model(_write(tmpdir, 'other.json', json.dumps({'format': 'zip', 'version': 1})))

        path = save_model(model, os.path.join(tmpdir, 'model.json'))
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        del data['trees'][0]['root']
        with pytest.raises(ModelLoadError):
            load_model(_write(tmpdir, 'truncated.json', json.dumps(data)))

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        data['n_features'] = 2
        with pytest.raises(ModelLoadError):
            load_model(_write(tmpdir, 'mismatch.json', json.dumps(data)))

        def _corrupted(name, edit):
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            edit(data)
            return _write(tmpdir, name, json.dumps(data))

        def _first_leaf(node):
            while 'value' not in node:
                node = node['left']
            return node

        def _set_first_threshold(data, value):
            for entry in data['trees']:
                if 'threshold' in entry['root']:
                    entry['root']['threshold'] = value
                    return
            raise AssertionError("분할 노드가 있는 트리가 없습니다")

        # 유한하지 않은 수치는 로딩 단계에서 거부
        for name, edit in [
            ('nan_leaf.json', lambda d: _first_leaf(d['trees'][0]['root']).update(value='nan')),
            ('inf_weight.json', lambda d: d['trees'][1].update(weight='inf')),
            ('inf_threshold.json', lambda d: _set_first_threshold(d, '-inf')),
            ('nan_base.json', lambda d: d.update(base_prediction='nan')),
        ]:
            with pytest.raises(ModelLoadError):
                load_model(_corrupted(name, edit))


# =============================================================================
# 5. 전체 흐름
# =============================================================================

def test_train_evaluate_predict_end_to_end():
    """합성 데이터로 학습 > 평가 > 샘플 예측, 저장된 모델로 재예측"""
    print("\n" + "=" * 50)
    print("Test: End-to-End Pipeline")
    print("=" * 50)

    with tempfile.TemporaryDirectory() as tmpdir:
        train_path = os.path.join(tmpdir, 'taxi-fare-train.csv')
        test_path = os.path.join(tmpdir, 'taxi-fare-test.csv')
        write_trip_csv(make_trip_frame(n=2000, seed=0), train_path)
        write_trip_csv(make_trip_frame(n=500, seed=1), test_path)

        config = PipelineConfig(
            train_path=train_path,
            test_path=test_path,
            model_path=os.path.join(tmpdir, 'model.json'),
            boosting=BoostingConfig(num_trees=60, learning_rate=0.2, max_depth=4, min_leaf_size=10),
            plot_dir=os.path.join(tmpdir, 'plots'),
            verbose=0,
        )
        result = train_evaluate_predict(config)
        reloaded = load_and_predict(config)

        assert os.path.exists(config.model_path)
        assert os.path.exists(os.path.join(tmpdir, 'plots', 'boosting_curve.png'))

    metrics = result['metrics']
    assert metrics.r_squared > 0.9, f"R² 너무 낮음: {metrics.r_squared}"

    # 참고 요금 대비 20% 이내
    for sample in result['samples']:
        assert sample.error_pct < 20.0, f"{sample.trip}: {sample.predicted:.2f} vs {sample.actual}"

    assert [s.predicted for s in reloaded['samples']] == [s.predicted for s in result['samples']]

    for sample in result['samples']:
        print(f"  ✓ 예측: {sample.predicted:.2f}, 실제: {sample.actual}, 오차: {sample.error_pct:.2f}%")


def test_score_samples_uses_own_prediction():
    """각 샘플의 오차는 자기 예측값 기준"""
    model, _ = _small_model()
    samples = score_samples(model)

    assert len(samples) == len(SAMPLE_TRIPS)
    for sample in samples:
        assert sample.predicted == model.predict_trip(sample.trip)
        assert np.isclose(sample.error_pct, relative_error(sample.predicted, sample.actual))


def test_runner_reports_missing_data():
    """실행 스크립트는 데이터 파일이 없으면 종료 코드 1"""
    import run_fare_prediction

    with tempfile.TemporaryDirectory() as tmpdir:
        code = run_fare_prediction.main([
            'train',
            '--train-path', os.path.join(tmpdir, 'none.csv'),
            '--model-path', os.path.join(tmpdir, 'model.json'),
        ])
        assert code == 1

        code = run_fare_prediction.main([
            'predict', '--model-path', os.path.join(tmpdir, 'model.json'),
        ])
        assert code == 1


def test_runner_verbose_flag():
    """-v는 학습 진행 로그만 켜고 나머지 설정은 CONFIG 기본값 유지"""
    import run_fare_prediction

    quiet = run_fare_prediction.build_config(run_fare_prediction.parse_args(['train']))
    loud = run_fare_prediction.build_config(run_fare_prediction.parse_args(['train', '-v']))

    assert quiet.verbose == 0
    assert loud.verbose == 1
    assert loud.boosting == quiet.boosting


def run_all_tests():
    """모든 테스트 실행"""
    print("\n" + "=" * 60)
    print("TAXI FARE FROM SCRATCH - 파이프라인 검증 테스트")
    print("=" * 60)

    tests = [
        test_load_trips,
        test_load_trips_extra_column_row,
        test_load_trips_missing_column_row,
        test_load_trips_non_numeric,
        test_load_trips_extra_field_every_row,
        test_load_trips_invalid_utf8,
        test_load_trips_missing_file,
        test_encoder_layout,
        test_encoder_first_seen_order,
        test_encoder_excludes_trip_time,
        test_encoder_unseen_category,
        test_encoder_frame_matches_single,
        test_encoder_requires_fit,
        test_records_frame_roundtrip,
        test_numeric_category_values_match_file_text,
        test_metrics_match_sklearn,
        test_metrics_perfect_prediction,
        test_metrics_degenerate_baseline,
        test_evaluate_model,
        test_relative_error,
        test_model_save_load_roundtrip,
        test_model_without_encoder_roundtrip,
        test_load_model_errors,
        test_train_evaluate_predict_end_to_end,
        test_score_samples_uses_own_prediction,
        test_runner_reports_missing_data,
        test_runner_verbose_flag,
    ]

    passed = 0
    failed = 0

    with warnings.catch_warnings():
        warnings.simplefilter('ignore')
        for test in tests:
            try:
                test()
                passed += 1
            except Exception as e:
                print(f"\n  ✗ 테스트 실패 ({test.__name__}): {e}")
                failed += 1

    print("\n" + "=" * 60)
    print(f"테스트 결과: {passed} 통과, {failed} 실패")
    print("=" * 60)

    return failed == 0


if __name__ == "__main__":
    success = run_all_tests()
    exit(0 if success else 1)
